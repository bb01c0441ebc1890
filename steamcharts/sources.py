from __future__ import annotations

import asyncio
import html
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from loguru import logger

from .config import (
    MAX_CONSECUTIVE_EMPTY_PAGES,
    MOST_PLAYED_URL,
    PRIORITY_STEAM_CHARTS,
    PRIORITY_STEAMSPY_CATALOG,
    PRIORITY_STEAMSPY_TOP,
    STEAMSPY_API_BASE,
    Settings,
)
from .fetch_utils import fetch_json
from .pipeline_types import CandidateItem, SourceResult


# ---------------------------
# Field parsing helpers
# ---------------------------

def parse_app_id(value: Any) -> Optional[int]:
    """
    Coerce an upstream app id (int or numeric string) to a positive int.

    Returns None for anything unusable so the row can be skipped.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        app_id = int(str(value).strip())
    except ValueError:
        return None
    return app_id if app_id > 0 else None


def parse_count(value: Any) -> Optional[int]:
    """Non-negative int or None. SteamSpy sometimes sends counts as strings."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return None
    return n if n >= 0 else None


def clean_name(value: Any) -> Optional[str]:
    """
    Tidy a game title: decode HTML entities (SteamSpy sends ``&amp;``),
    NFKC-normalize, collapse whitespace. Empty titles become None.
    """
    if not isinstance(value, str):
        return None
    name = unicodedata.normalize("NFKC", html.unescape(value))
    name = re.sub(r"\s+", " ", name).strip()
    return name or None


def parse_tags(value: Any) -> Optional[Tuple[Tuple[str, int], ...]]:
    """SteamSpy tags arrive as ``{tag: votes}``, or as ``[]`` when there are none."""
    if not isinstance(value, dict) or not value:
        return None
    pairs = []
    for tag, votes in value.items():
        name = clean_name(tag)
        if name:
            pairs.append((name, parse_count(votes) or 0))
    return tuple(pairs) or None


def steamspy_details(row: Dict[str, Any]) -> Dict[str, Any]:
    """Optional per-game fields SteamSpy carries next to ``ccu``."""
    return {
        "owners": clean_name(row.get("owners")),
        "positive": parse_count(row.get("positive")),
        "negative": parse_count(row.get("negative")),
        "average_playtime": parse_count(row.get("average_forever")),
        "median_playtime": parse_count(row.get("median_forever")),
        "price": parse_count(row.get("price")),
        "initial_price": parse_count(row.get("initialprice")),
        "discount": parse_count(row.get("discount")),
        "genre": clean_name(row.get("genre")),
        "publisher": clean_name(row.get("publisher")),
        "developer": clean_name(row.get("developer")),
        "tags": parse_tags(row.get("tags")),
    }


# ---------------------------
# Base adapter
# ---------------------------

class CandidateSource:
    """
    One upstream origin of candidates.

    Subclasses implement :meth:`fetch`, which may raise. Callers use
    :meth:`collect`, which never does: any failure becomes an empty
    :class:`SourceResult` carrying a diagnostic.

    ``scanned`` counts raw upstream rows; sources that filter rows bump it
    in :meth:`fetch`.
    """

    origin_tag: str = "unknown"
    priority: int = PRIORITY_STEAMSPY_CATALOG
    scanned: int = 0

    async def fetch(self, client: httpx.AsyncClient) -> List[CandidateItem]:
        raise NotImplementedError

    async def collect(self, client: httpx.AsyncClient) -> SourceResult:
        self.scanned = 0
        try:
            candidates = await self.fetch(client)
        except Exception as e:
            logger.warning("Source {} unavailable: {}", self.origin_tag, e)
            return SourceResult(
                origin_tag=self.origin_tag,
                priority=self.priority,
                diagnostic=f"{self.origin_tag}: {e}",
                scanned=self.scanned,
            )

        logger.info("Source {} produced {} candidates", self.origin_tag, len(candidates))
        return SourceResult(
            origin_tag=self.origin_tag,
            priority=self.priority,
            candidates=candidates,
            scanned=self.scanned,
        )


# ---------------------------
# Steam Web API
# ---------------------------

class SteamChartsSource(CandidateSource):
    """Steam's own most-played chart. Most authoritative, but carries no names."""

    origin_tag = "steam-charts"
    priority = PRIORITY_STEAM_CHARTS

    async def fetch(self, client: httpx.AsyncClient) -> List[CandidateItem]:
        data = await fetch_json(client, MOST_PLAYED_URL)
        ranks = ((data or {}).get("response") or {}).get("ranks") or []

        out: List[CandidateItem] = []
        for row in ranks:
            app_id = parse_app_id(row.get("appid"))
            if app_id is None:
                continue
            current = parse_count(row.get("concurrent", row.get("concurrent_in_game")))
            out.append(
                CandidateItem(
                    id=app_id,
                    priority=self.priority,
                    origin_tag=self.origin_tag,
                    static_metric=current or None,
                    peak_hint=parse_count(row.get("peak_in_game")) or None,
                )
            )
        return out


# ---------------------------
# SteamSpy
# ---------------------------

def steamspy_rows_to_candidates(
    data: Any,
    priority: int,
    origin_tag: str,
    active_only: bool = True,
) -> List[CandidateItem]:
    """
    Normalize a SteamSpy ``{appid: {...}}`` mapping into candidates.

    ``ccu`` becomes the static metric and the remaining SteamSpy fields ride
    along as details. With ``active_only`` rows without any current players
    are skipped.
    """
    if not isinstance(data, dict):
        return []

    out: List[CandidateItem] = []
    for key, row in data.items():
        if not isinstance(row, dict):
            continue
        app_id = parse_app_id(row.get("appid", key))
        if app_id is None:
            continue
        ccu = parse_count(row.get("ccu"))
        if active_only and not ccu:
            continue
        out.append(
            CandidateItem(
                id=app_id,
                priority=priority,
                origin_tag=origin_tag,
                name=clean_name(row.get("name")),
                static_metric=ccu or None,
                **steamspy_details(row),
            )
        )
    return out


class SteamSpyTopSource(CandidateSource):
    """SteamSpy's top 100 by players in the last two weeks."""

    origin_tag = "steamspy-top"
    priority = PRIORITY_STEAMSPY_TOP

    async def fetch(self, client: httpx.AsyncClient) -> List[CandidateItem]:
        data = await fetch_json(client, STEAMSPY_API_BASE, params={"request": "top100in2weeks"})
        return steamspy_rows_to_candidates(data, self.priority, self.origin_tag, active_only=False)


class SteamSpyAllSource(CandidateSource):
    """
    The paginated full SteamSpy catalog.

    Pages are walked in order until ``max_pages`` or until
    ``MAX_CONSECUTIVE_EMPTY_PAGES`` pages in a row come back empty or broken.
    A broken page counts as empty; it does not fail the source.
    """

    origin_tag = "steamspy"
    priority = PRIORITY_STEAMSPY_CATALOG

    def __init__(self, max_pages: int, active_only: bool = True):
        self.max_pages = max_pages
        self.active_only = active_only

    async def fetch(self, client: httpx.AsyncClient) -> List[CandidateItem]:
        out: List[CandidateItem] = []
        empty_run = 0
        errors = 0

        for page in range(self.max_pages):
            try:
                data = await fetch_json(client, STEAMSPY_API_BASE, params={"request": "all", "page": page})
            except Exception as e:
                logger.warning("SteamSpy page {} failed: {}", page, e)
                errors += 1
                data = None

            if not data:
                empty_run += 1
                if empty_run >= MAX_CONSECUTIVE_EMPTY_PAGES:
                    logger.info("Stopped at page {} ({} consecutive empty pages)", page, empty_run)
                    break
                continue

            empty_run = 0
            self.scanned += len(data) if isinstance(data, dict) else 0
            page_rows = steamspy_rows_to_candidates(data, self.priority, self.origin_tag, self.active_only)
            out.extend(page_rows)
            logger.info("SteamSpy page {}: {} rows, {} kept ({} so far)", page, len(data), len(page_rows), len(out))

        if not out and errors:
            raise RuntimeError(f"no rows collected, {errors} page(s) failed")
        return out


class SteamSpyTagSource(CandidateSource):
    """Extra coverage from SteamSpy tag listings; one call per tag."""

    origin_tag = "steamspy-tag"
    priority = PRIORITY_STEAMSPY_CATALOG

    def __init__(self, tags: Sequence[str]):
        self.tags = list(tags)

    async def fetch(self, client: httpx.AsyncClient) -> List[CandidateItem]:
        out: List[CandidateItem] = []
        failed: List[str] = []

        for tag in self.tags:
            try:
                data = await fetch_json(client, STEAMSPY_API_BASE, params={"request": "tag", "tag": tag})
            except Exception as e:
                logger.warning("SteamSpy tag '{}' failed: {}", tag, e)
                failed.append(tag)
                continue
            self.scanned += len(data) if isinstance(data, dict) else 0
            rows = steamspy_rows_to_candidates(data, self.priority, self.origin_tag)
            logger.info("Tag '{}': {} active games", tag, len(rows))
            out.extend(rows)

        if self.tags and len(failed) == len(self.tags):
            raise RuntimeError(f"all tags failed: {', '.join(failed)}")
        return out


# ---------------------------
# Running sources
# ---------------------------

def default_sources(settings: Settings) -> List[CandidateSource]:
    return [
        SteamChartsSource(),
        SteamSpyTopSource(),
        SteamSpyAllSource(max_pages=settings.max_pages),
    ]


def supplemental_sources(settings: Settings) -> List[CandidateSource]:
    """Sources that only run when the primary ones came up short."""
    if not settings.tags:
        return []
    return [SteamSpyTagSource(settings.tags)]


async def collect_all(
    client: httpx.AsyncClient,
    sources: Iterable[CandidateSource],
) -> List[SourceResult]:
    """
    Run every source concurrently. Results come back in source declaration
    order regardless of which finished first.
    """
    results = await asyncio.gather(*(s.collect(client) for s in sources))
    return list(results)


def count_active(results: Iterable[SourceResult]) -> int:
    """Unique game ids found so far across ``results``."""
    return len({c.id for r in results for c in r.candidates})


async def collect_with_fallback(
    client: httpx.AsyncClient,
    primary: Sequence[CandidateSource],
    supplemental: Sequence[CandidateSource],
    target_games: int,
) -> List[SourceResult]:
    """
    Run ``primary`` concurrently, then ``supplemental`` only while fewer than
    ``target_games`` unique active games have been found.
    """
    results = await collect_all(client, primary)
    if not supplemental:
        return results

    active = count_active(results)
    if active >= target_games:
        logger.info(
            "Skipping {} supplemental source(s): {} active games >= target {}",
            len(supplemental),
            active,
            target_games,
        )
        return results

    logger.info("Only {} active games (target {}), running supplemental sources", active, target_games)
    return results + await collect_all(client, supplemental)


def summarize_sources(results: Iterable[SourceResult]) -> Dict[str, int]:
    return {r.origin_tag: len(r.candidates) for r in results}
