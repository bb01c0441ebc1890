"""Typed containers shared across pipeline modules."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class CandidateItem:
    """A game discovered by a source, before it has a live player count."""

    id: int
    priority: int
    origin_tag: str
    name: Optional[str] = None
    static_metric: Optional[int] = None
    peak_hint: Optional[int] = None

    # SteamSpy details. Tags are (tag, votes) pairs so the record stays hashable.
    owners: Optional[str] = None
    positive: Optional[int] = None
    negative: Optional[int] = None
    average_playtime: Optional[int] = None
    median_playtime: Optional[int] = None
    price: Optional[int] = None
    initial_price: Optional[int] = None
    discount: Optional[int] = None
    genre: Optional[str] = None
    publisher: Optional[str] = None
    developer: Optional[str] = None
    tags: Optional[Tuple[Tuple[str, int], ...]] = None


DETAIL_FIELDS = (
    "owners",
    "positive",
    "negative",
    "average_playtime",
    "median_playtime",
    "price",
    "initial_price",
    "discount",
    "genre",
    "publisher",
    "developer",
    "tags",
)


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one live metric lookup."""

    id: int
    metric: int
    succeeded: bool


@dataclass
class SourceResult:
    """What a source adapter hands back: candidates plus an optional diagnostic."""

    origin_tag: str
    priority: int
    candidates: List[CandidateItem] = field(default_factory=list)
    diagnostic: Optional[str] = None
    # raw rows seen upstream, before the active-only filter
    scanned: int = 0

    @property
    def ok(self) -> bool:
        return self.diagnostic is None


@dataclass
class PipelineContext:
    """
    Run-scoped state threaded through the stages.

    The fetcher only writes here at window boundaries, via :meth:`merge_window`.
    """

    started_at: float = field(default_factory=time.monotonic)
    outcomes: Dict[int, FetchOutcome] = field(default_factory=dict)
    processed: int = 0
    failed: int = 0
    scanned: int = 0
    diagnostics: List[str] = field(default_factory=list)

    def merge_window(self, window: List[FetchOutcome]) -> None:
        for outcome in window:
            if outcome.id in self.outcomes:
                # same id twice in the id list; first outcome stands
                continue
            self.outcomes[outcome.id] = outcome
            self.processed += 1
            if not outcome.succeeded:
                self.failed += 1

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at
