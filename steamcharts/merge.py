"""
Priority-based merge of candidate lists from several sources.

The merge is a fold over sources sorted by priority into a fresh mapping.
The first source to mention an id owns the record; later (weaker) sources
can only fill in fields that are still empty. Input records are never
mutated, a backfilled record is a new ``CandidateItem``.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List

from loguru import logger

from .pipeline_types import DETAIL_FIELDS, CandidateItem, SourceResult

BACKFILL_FIELDS = ("name", "static_metric", "peak_hint")


def backfill(existing: CandidateItem, incoming: CandidateItem) -> CandidateItem:
    """
    Fill falsy fields of ``existing`` from ``incoming``. SteamSpy detail
    fields are filled only when missing, since 0 is a real price or vote count.

    Priority and origin stay with ``existing``. Returns ``existing`` itself
    when there was nothing to fill.
    """
    updates = {}
    for name in BACKFILL_FIELDS:
        if not getattr(existing, name) and getattr(incoming, name):
            updates[name] = getattr(incoming, name)
    for name in DETAIL_FIELDS:
        if getattr(existing, name) is None and getattr(incoming, name) is not None:
            updates[name] = getattr(incoming, name)
    if not updates:
        return existing
    return replace(existing, **updates)


def merge_sources(results: Iterable[SourceResult]) -> List[CandidateItem]:
    """
    Deduplicate candidates by id across sources.

    Sources are visited by ascending priority, then origin tag, so the result
    does not depend on the order in which sources finished. Output is in
    first-insertion order, which later serves as the ranking tie-break.
    """
    ordered = sorted(results, key=lambda r: (r.priority, r.origin_tag))
    merged: Dict[int, CandidateItem] = {}
    backfilled = 0

    for result in ordered:
        for cand in result.candidates:
            current = merged.get(cand.id)
            if current is None:
                merged[cand.id] = cand
                continue
            updated = backfill(current, cand)
            if updated is not current:
                backfilled += 1
            merged[cand.id] = updated

    logger.info(
        "Merged {} sources into {} unique candidates ({} backfilled)",
        len(ordered),
        len(merged),
        backfilled,
    )
    return list(merged.values())
