from __future__ import annotations

from typing import List, Optional

import numpy as np
from loguru import logger

from .config import PROTECTED_PRIORITY_MAX
from .pipeline_types import CandidateItem


def partial_shuffle_sample(n: int, k: int, rng: np.random.Generator) -> List[int]:
    """
    Pick ``k`` distinct indices out of ``range(n)`` uniformly at random.

    Partial Fisher-Yates: only the first ``k`` slots of the index array are
    shuffled, so the cost is O(n) for the array plus O(k) swaps.
    """
    k = max(0, min(k, n))
    idx = np.arange(n)
    for i in range(k):
        j = int(rng.integers(i, n))
        idx[i], idx[j] = idx[j], idx[i]
    return idx[:k].tolist()


def sample_candidates(
    candidates: List[CandidateItem],
    target_size: Optional[int],
    rng: Optional[np.random.Generator] = None,
) -> List[CandidateItem]:
    """
    Reduce an oversized candidate pool to roughly ``target_size``.

    Rules:
    - ``target_size`` of None / 0, or a pool already small enough: unchanged.
    - Candidates with priority <= 2 are always kept, even if that overshoots.
    - Remaining slots are filled by a uniform sample of the priority-3 pool.

    Output keeps the original merge order.
    """
    if not target_size or len(candidates) <= target_size:
        return list(candidates)

    kept_idx = [i for i, c in enumerate(candidates) if c.priority <= PROTECTED_PRIORITY_MAX]
    pool_idx = [i for i, c in enumerate(candidates) if c.priority > PROTECTED_PRIORITY_MAX]

    slots = target_size - len(kept_idx)
    if slots <= 0:
        logger.info(
            "Sampler: {} protected candidates already meet target {}; dropping {} pooled",
            len(kept_idx),
            target_size,
            len(pool_idx),
        )
        return [candidates[i] for i in kept_idx]

    rng = rng if rng is not None else np.random.default_rng()
    picked = [pool_idx[j] for j in partial_shuffle_sample(len(pool_idx), slots, rng)]

    chosen = sorted(kept_idx + picked)
    logger.info(
        "Sampler: kept {} protected + {} of {} pooled (target {})",
        len(kept_idx),
        len(picked),
        len(pool_idx),
        target_size,
    )
    return [candidates[i] for i in chosen]
