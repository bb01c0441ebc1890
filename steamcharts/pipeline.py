"""
End-to-end run: sources -> merge -> sample -> fetch -> aggregate/validate.

Every stage takes the full output of the previous one. Run state lives on a
:class:`PipelineContext` created here and passed down, so each stage can also
be exercised on its own.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import httpx
import numpy as np
from loguru import logger

from .aggregate import build_dataset
from .checkpoint import Checkpointer
from .config import Dataset, Settings
from .fetch_utils import build_client, client_limits
from .fetcher import ConcurrentFetcher, Lookup
from .merge import merge_sources
from .pipeline_types import PipelineContext
from .retry import RetryPolicy
from .sampling import sample_candidates
from .sources import (
    CandidateSource,
    collect_with_fallback,
    default_sources,
    summarize_sources,
    supplemental_sources,
)


async def run_pipeline_async(
    settings: Settings,
    sources: Optional[List[CandidateSource]] = None,
    supplemental: Optional[List[CandidateSource]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    lookup: Optional[Lookup] = None,
    ctx: Optional[PipelineContext] = None,
) -> Dataset:
    ctx = ctx if ctx is not None else PipelineContext()
    sources = sources if sources is not None else default_sources(settings)
    supplemental = supplemental if supplemental is not None else supplemental_sources(settings)

    async with build_client(transport, limits=client_limits(settings.concurrency)) as client:
        # Stage 1: sources, concurrently; tag listings only when still short
        results = await collect_with_fallback(client, sources, supplemental, settings.target_games)
        for r in results:
            ctx.scanned += r.scanned
            if not r.ok:
                ctx.diagnostics.append(r.diagnostic)
        logger.info("Source yields: {}", summarize_sources(results))
        if ctx.diagnostics:
            logger.warning("{} source(s) unavailable: {}", len(ctx.diagnostics), ctx.diagnostics)

        # Stage 2: merge
        candidates = merge_sources(results)

        # Stage 3: optional down-sampling
        rng = np.random.default_rng(settings.seed)
        candidates = sample_candidates(candidates, settings.target_size, rng=rng)

        # Stage 4: live metrics
        fetcher = ConcurrentFetcher(
            client=client,
            concurrency=settings.concurrency,
            policy=RetryPolicy(max_retries=settings.max_retries, delay_unit=settings.retry_delay),
            window_delay=settings.window_delay,
            lookup=lookup,
        )
        checkpointer = Checkpointer(
            settings.checkpoint_path,
            settings.checkpoint_interval,
            names={c.id: c.name for c in candidates if c.name},
        )
        await fetcher.fetch_all([c.id for c in candidates], ctx, on_window=checkpointer)

    # Stage 5: aggregate, rank, validate
    return build_dataset(candidates, ctx, min_required=settings.min_required)


def run_full_pipeline(settings: Settings, **kwargs) -> Dataset:
    """Blocking wrapper around :func:`run_pipeline_async`."""
    return asyncio.run(run_pipeline_async(settings, **kwargs))
