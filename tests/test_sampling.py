import numpy as np

from steamcharts.config import PROTECTED_PRIORITY_MAX
from steamcharts.pipeline_types import CandidateItem
from steamcharts.sampling import partial_shuffle_sample, sample_candidates


def _cands(pairs):
    # pairs: [(id, priority), ...]
    return [CandidateItem(id=i, priority=p, origin_tag=f"p{p}") for i, p in pairs]


def test_kept_already_meets_target_samples_nothing():
    cands = _cands([(1, 1), (2, 1), (3, 3), (4, 3)])
    out = sample_candidates(cands, 2, rng=np.random.default_rng(0))
    assert [c.id for c in out] == [1, 2]


def test_small_pool_is_returned_unchanged():
    cands = _cands([(1, 3), (2, 3)])
    assert sample_candidates(cands, 5) == cands
    assert sample_candidates(cands, 0) == cands
    assert sample_candidates(cands, None) == cands


def test_protected_are_never_dropped_and_size_is_exact():
    pairs = [(i, 1 if i < 3 else 2 if i < 5 else 3) for i in range(100)]
    cands = _cands(pairs)
    for seed in range(20):
        out = sample_candidates(cands, 30, rng=np.random.default_rng(seed))
        ids = [c.id for c in out]
        assert len(out) == 30
        assert len(set(ids)) == 30
        assert {0, 1, 2, 3, 4} <= set(ids)


def test_kept_overshooting_target_is_allowed():
    cands = _cands([(1, 1), (2, 2), (3, 2), (4, 3), (5, 3)])
    out = sample_candidates(cands, 2)
    assert [c.id for c in out] == [1, 2, 3]


def test_sample_preserves_merge_order():
    cands = _cands([(i, 3) for i in range(50)] + [(99, 1)])
    out = sample_candidates(cands, 10, rng=np.random.default_rng(3))
    ids = [c.id for c in out]
    assert ids[-1] == 99
    assert ids[:-1] == sorted(ids[:-1])


def test_same_seed_same_sample():
    cands = _cands([(i, 3) for i in range(200)])
    a = sample_candidates(cands, 25, rng=np.random.default_rng(42))
    b = sample_candidates(cands, 25, rng=np.random.default_rng(42))
    assert a == b


def test_partial_shuffle_sample_bounds():
    rng = np.random.default_rng(1)
    picked = partial_shuffle_sample(10, 10, rng)
    assert sorted(picked) == list(range(10))
    assert partial_shuffle_sample(5, 0, rng) == []
    assert len(partial_shuffle_sample(3, 7, rng)) == 3


def test_protection_covers_priority_numbers_up_to_the_cutoff():
    cands = _cands([(1, PROTECTED_PRIORITY_MAX), (2, PROTECTED_PRIORITY_MAX + 1), (3, PROTECTED_PRIORITY_MAX + 1)])
    for seed in range(10):
        out = sample_candidates(cands, 1, rng=np.random.default_rng(seed))
        assert [c.id for c in out] == [1]
