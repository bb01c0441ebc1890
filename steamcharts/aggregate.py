from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd
from loguru import logger

from .config import Dataset, DatasetMetadata, FinalRecord
from .pipeline_types import DETAIL_FIELDS, CandidateItem, FetchOutcome, PipelineContext

TREND_STABLE = "stable"
TREND_DOWN = "down"

RECORD_COLUMNS = [
    "id",
    "name",
    "current_metric",
    "peak_metric",
    "trend",
    "rank",
    "origin_tag",
]


class BelowThresholdError(RuntimeError):
    """Too few items survived the pipeline. The only error that fails a run."""

    def __init__(self, observed: int, required: int):
        self.observed = observed
        self.required = required
        super().__init__(
            f"Only {observed} items with a live metric; minimum required is "
            f"{required} ({observed} < {required})"
        )


# ---------------------------
# Per-record derivations
# ---------------------------

def compute_trend(current: int, peak: Optional[int]) -> str:
    """
    Classify a game as stable or trending down against its peak.

    Anything within 10% of the peak is stable. The 0.7 tier returns the
    same value as the fallback.
    """
    if not peak or peak == current:
        return TREND_STABLE
    ratio = current / peak
    if ratio > 0.9:
        return TREND_STABLE
    if ratio > 0.7:
        return TREND_DOWN
    return TREND_DOWN


def display_name(cand: CandidateItem) -> str:
    return cand.name or f"Game {cand.id}"


# ---------------------------
# Join + rank
# ---------------------------

def join_outcomes(
    candidates: Sequence[CandidateItem],
    outcomes: Mapping[int, FetchOutcome],
) -> pd.DataFrame:
    """
    One row per candidate, in merge order, with the fetched metric joined in.

    ``current_metric`` is the larger of the live count and the count the source
    reported; a missing outcome counts as 0.
    """
    rows: List[Dict] = []
    seen = set()
    for order, cand in enumerate(candidates):
        if cand.id in seen:
            continue
        seen.add(cand.id)
        outcome = outcomes.get(cand.id)
        fetched = outcome.metric if outcome is not None else 0
        current = max(fetched, cand.static_metric or 0)
        peak = cand.peak_hint or current
        rows.append(
            {
                "merge_order": order,
                "id": cand.id,
                "name": display_name(cand),
                "current_metric": int(current),
                "peak_metric": int(peak),
                "origin_tag": cand.origin_tag,
            }
        )
    return pd.DataFrame(
        rows,
        columns=["merge_order", "id", "name", "current_metric", "peak_metric", "origin_tag"],
    )


def rank_records(df: pd.DataFrame) -> pd.DataFrame:
    """
    Drop zero-metric rows, attach trend, sort by metric (desc) and assign a
    dense 1..N rank. Ties keep merge order because the sort is stable.
    """
    df = df[df["current_metric"] > 0].copy()
    df["trend"] = [
        compute_trend(cur, peak)
        for cur, peak in zip(df["current_metric"], df["peak_metric"])
    ]
    df = df.sort_values("current_metric", ascending=False, kind="stable").reset_index(drop=True)
    df["rank"] = range(1, len(df) + 1)
    return df[RECORD_COLUMNS]


def candidate_details(cand: Optional[CandidateItem]) -> Dict:
    """SteamSpy details that are set, ready for :class:`FinalRecord`."""
    if cand is None:
        return {}
    details = {}
    for name in DETAIL_FIELDS:
        value = getattr(cand, name)
        if value is not None:
            details[name] = dict(value) if name == "tags" else value
    return details


def to_records(
    df: pd.DataFrame,
    candidates: Optional[Mapping[int, CandidateItem]] = None,
) -> List[FinalRecord]:
    """
    Build records from ranked rows. Details stay out of the frame (pandas
    would turn optional ints into floats) and are looked up by id instead.
    """
    candidates = candidates or {}
    return [
        FinalRecord(
            id=int(row.id),
            name=str(row.name),
            current_metric=int(row.current_metric),
            peak_metric=int(row.peak_metric),
            trend=str(row.trend),
            rank=int(row.rank),
            origin_tag=str(row.origin_tag),
            **candidate_details(candidates.get(int(row.id))),
        )
        for row in df.itertuples(index=False)
    ]


# ---------------------------
# Validation
# ---------------------------

def validate_count(records: Sequence[FinalRecord], min_required: int) -> None:
    if len(records) < min_required:
        raise BelowThresholdError(observed=len(records), required=min_required)
    logger.info("Minimum of {} items met ({} ranked)", min_required, len(records))


# ---------------------------
# End-to-end
# ---------------------------

def build_dataset(
    candidates: Sequence[CandidateItem],
    ctx: PipelineContext,
    min_required: int = 0,
    now: Optional[datetime] = None,
) -> Dataset:
    """
    Join fetch outcomes onto candidates, rank, validate and wrap in a
    :class:`Dataset`. Raises :class:`BelowThresholdError` when too few items
    survive.
    """
    joined = join_outcomes(candidates, ctx.outcomes)
    ranked = rank_records(joined)
    by_id: Dict[int, CandidateItem] = {}
    for cand in candidates:
        by_id.setdefault(cand.id, cand)
    records = to_records(ranked, by_id)
    logger.info(
        "Aggregated {} candidates into {} ranked items ({} dropped at zero)",
        len(joined),
        len(records),
        len(joined) - len(records),
    )

    validate_count(records, min_required)

    now = now or datetime.now(timezone.utc)
    metadata = DatasetMetadata(
        timestamp=now.isoformat(),
        total_items=len(records),
        total_metric_sum=sum(r.current_metric for r in records),
        processed_count=ctx.processed,
        failed_count=ctx.failed,
        duration_seconds=round(ctx.elapsed(), 3),
        total_scanned=ctx.scanned,
    )
    return Dataset(metadata=metadata, items=records)
