from datetime import datetime, timezone

import pytest

from steamcharts.aggregate import (
    BelowThresholdError,
    build_dataset,
    compute_trend,
    join_outcomes,
    rank_records,
    to_records,
)
from steamcharts.pipeline_types import CandidateItem, FetchOutcome, PipelineContext


def _ctx(outcomes):
    ctx = PipelineContext()
    ctx.merge_window([FetchOutcome(id=i, metric=m, succeeded=ok) for i, m, ok in outcomes])
    return ctx


def _cand(i, **kw):
    kw.setdefault("priority", 3)
    kw.setdefault("origin_tag", "spy")
    return CandidateItem(id=i, **kw)


def test_compute_trend():
    assert compute_trend(100, None) == "stable"
    assert compute_trend(100, 0) == "stable"
    assert compute_trend(100, 100) == "stable"
    assert compute_trend(95, 100) == "stable"
    assert compute_trend(90, 100) == "down"
    assert compute_trend(80, 100) == "down"
    assert compute_trend(10, 100) == "down"


def test_current_metric_takes_max_of_fetched_and_static():
    cands = [_cand(1, static_metric=500), _cand(2, static_metric=5), _cand(3)]
    ctx = _ctx([(1, 300, True), (2, 0, False), (3, 40, True)])
    records = to_records(rank_records(join_outcomes(cands, ctx.outcomes)))
    by_id = {r.id: r for r in records}

    assert by_id[1].current_metric == 500
    assert by_id[2].current_metric == 5
    assert by_id[3].current_metric == 40


def test_zero_metric_candidates_are_dropped():
    cands = [_cand(i) for i in range(1, 11)]
    failing = {2, 5, 9}
    ctx = _ctx([(i, 0 if i in failing else i * 10, i not in failing) for i in range(1, 11)])

    ds = build_dataset(cands, ctx, min_required=0)
    assert ds.metadata.total_items == 7
    assert ds.metadata.failed_count == 3
    assert ds.metadata.processed_count == 10
    assert not {r.id for r in ds.items} & failing
    assert all(r.current_metric > 0 for r in ds.items)


def test_ranks_are_dense_and_ties_keep_merge_order():
    cands = [_cand(5, name="E"), _cand(1, name="A"), _cand(3, name="C"), _cand(2, name="B")]
    ctx = _ctx([(5, 10, True), (1, 30, True), (3, 10, True), (2, 30, True)])

    ds = build_dataset(cands, ctx)
    assert [r.rank for r in ds.items] == [1, 2, 3, 4]
    assert [r.id for r in ds.items] == [1, 2, 5, 3]
    metrics = [r.current_metric for r in ds.items]
    assert metrics == sorted(metrics, reverse=True)


def test_peak_and_trend_come_from_peak_hint():
    cands = [_cand(1, peak_hint=1000), _cand(2), _cand(3, peak_hint=105)]
    ctx = _ctx([(1, 500, True), (2, 50, True), (3, 100, True)])
    by_id = {r.id: r for r in build_dataset(cands, ctx).items}

    assert by_id[1].peak_metric == 1000
    assert by_id[1].trend == "down"
    assert by_id[2].peak_metric == 50
    assert by_id[2].trend == "stable"
    assert by_id[3].trend == "stable"


def test_missing_name_gets_placeholder():
    ds = build_dataset([_cand(730)], _ctx([(730, 9, True)]))
    assert ds.items[0].name == "Game 730"


def test_metadata_totals():
    cands = [_cand(1), _cand(2)]
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ds = build_dataset(cands, _ctx([(1, 7, True), (2, 3, True)]), now=now)

    assert ds.metadata.total_metric_sum == 10
    assert ds.metadata.timestamp == "2024-01-01T00:00:00+00:00"
    assert ds.metadata.duration_seconds >= 0


def test_below_threshold_is_fatal_with_counts():
    cands = [_cand(i) for i in range(1, 43)]
    ctx = _ctx([(i, 1, True) for i in range(1, 43)])

    with pytest.raises(BelowThresholdError) as exc:
        build_dataset(cands, ctx, min_required=100)
    assert exc.value.observed == 42
    assert exc.value.required == 100
    assert "42 < 100" in str(exc.value)


def test_empty_input_with_no_minimum():
    ds = build_dataset([], PipelineContext())
    assert ds.items == []
    assert ds.metadata.total_items == 0


def test_details_reach_final_records():
    cands = [
        _cand(1, name="Tagged", price=0, publisher="Valve", tags=(("Indie", 9), ("RPG", 3))),
        _cand(2, name="Bare"),
    ]
    ds = build_dataset(cands, _ctx([(1, 20, True), (2, 10, True)]))
    tagged, bare = ds.items

    assert tagged.price == 0
    assert tagged.publisher == "Valve"
    assert tagged.tags == {"Indie": 9, "RPG": 3}
    assert bare.price is None and bare.tags is None


def test_metadata_carries_scan_count():
    ctx = _ctx([(1, 5, True)])
    ctx.scanned = 250
    ds = build_dataset([_cand(1)], ctx)
    assert ds.metadata.total_scanned == 250
