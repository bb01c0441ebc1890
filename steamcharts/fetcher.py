"""
Windowed concurrent lookup of live player counts.

Ids are processed in consecutive windows of ``concurrency`` items. Every
lookup in a window runs concurrently and the window is a barrier: nothing
from the next window starts until the current one has fully settled. Failed
lookups are retried under a :class:`RetryPolicy` and, once exhausted,
recorded as ``metric=0, succeeded=False``; they never abort the run.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from loguru import logger

from .config import CURRENT_PLAYERS_URL
from .fetch_utils import fetch_json
from .pipeline_types import FetchOutcome, PipelineContext
from .retry import RetryPolicy, call_with_retry

Lookup = Callable[[int], Awaitable[int]]
WindowCallback = Callable[[PipelineContext], None]


class MetricLookupError(RuntimeError):
    """The upstream answered, but not with a usable player count."""


async def fetch_player_count(client: httpx.AsyncClient, app_id: int) -> int:
    """
    Current player count for one app.

    Steam answers ``{"response": {"result": 1, "player_count": N}}`` on
    success; any other ``result`` means the app is unknown or hidden.
    """
    data = await fetch_json(client, CURRENT_PLAYERS_URL, params={"appid": app_id})
    payload = (data or {}).get("response") or {}
    if payload.get("result") != 1:
        raise MetricLookupError(f"app {app_id}: result={payload.get('result')}")
    count = payload.get("player_count", 0)
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        raise MetricLookupError(f"app {app_id}: bad player_count {count!r}")
    return count


def windows(ids: Sequence[int], size: int) -> List[List[int]]:
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


class ConcurrentFetcher:
    """
    Produces exactly one :class:`FetchOutcome` per id.

    ``lookup`` defaults to :func:`fetch_player_count` on ``client``; tests
    pass their own coroutine function instead of a client.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        concurrency: int = 10,
        policy: Optional[RetryPolicy] = None,
        window_delay: float = 0.0,
        lookup: Optional[Lookup] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if lookup is None:
            if client is None:
                raise ValueError("either client or lookup is required")
            lookup = lambda app_id: fetch_player_count(client, app_id)  # noqa: E731

        self.concurrency = concurrency
        self.policy = policy or RetryPolicy()
        self.window_delay = window_delay
        self._lookup = lookup
        self._sleep = sleep or asyncio.sleep
        # session cache: id -> successful metric
        self._cache: Dict[int, int] = {}
        self.remote_calls = 0

    async def _remote(self, app_id: int) -> int:
        self.remote_calls += 1
        return await self._lookup(app_id)

    async def lookup_one(self, app_id: int) -> FetchOutcome:
        cached = self._cache.get(app_id)
        if cached is not None:
            return FetchOutcome(id=app_id, metric=cached, succeeded=True)

        try:
            metric = await call_with_retry(
                lambda: self._remote(app_id),
                self.policy,
                label=f"app {app_id}",
                sleep=self._sleep,
            )
        except Exception as e:
            logger.debug("Lookup for app {} exhausted retries: {}", app_id, e)
            return FetchOutcome(id=app_id, metric=0, succeeded=False)

        # same id always maps to the same value within a run
        self._cache[app_id] = metric
        return FetchOutcome(id=app_id, metric=metric, succeeded=True)

    async def fetch_all(
        self,
        ids: Sequence[int],
        ctx: Optional[PipelineContext] = None,
        on_window: Optional[WindowCallback] = None,
    ) -> PipelineContext:
        """
        Look up every id, window by window, merging each finished window
        into ``ctx``. ``on_window`` runs after every merge.
        """
        ctx = ctx if ctx is not None else PipelineContext()
        batches = windows(ids, self.concurrency)
        logger.info("Fetching {} ids in {} windows of {}", len(ids), len(batches), self.concurrency)

        for n, batch in enumerate(batches):
            if n > 0 and self.window_delay > 0:
                await self._sleep(self.window_delay)

            results = await asyncio.gather(*(self.lookup_one(app_id) for app_id in batch))
            ctx.merge_window(list(results))

            if n % 10 == 0 or n == len(batches) - 1:
                logger.info(
                    "Window {}/{}: {} processed, {} failed",
                    n + 1,
                    len(batches),
                    ctx.processed,
                    ctx.failed,
                )
            if on_window is not None:
                on_window(ctx)

        return ctx
