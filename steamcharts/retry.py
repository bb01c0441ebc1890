from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to retry a failed call and how long to wait in between.

    ``max_retries`` counts retries on top of the first attempt. Retry ``i``
    (0-based) waits ``delay_unit * i``: the first retry is immediate and every
    later one waits strictly longer than the one before.
    """

    max_retries: int = 3
    delay_unit: float = 1.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.delay_unit < 0:
            raise ValueError(f"delay_unit must be >= 0, got {self.delay_unit}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_index: int) -> float:
        return self.delay_unit * retry_index


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "call",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Await ``func()`` until it succeeds or ``policy`` is exhausted.

    The last exception is re-raised once every attempt has failed.
    ``sleep`` is injectable so tests can observe the backoff schedule.
    """
    sleep = sleep or asyncio.sleep
    last_exc: Optional[BaseException] = None

    for attempt in range(policy.max_attempts):
        if attempt > 0:
            delay = policy.delay_for(attempt - 1)
            if delay > 0:
                await sleep(delay)
        try:
            return await func()
        except retry_on as e:
            last_exc = e
            logger.debug("{} failed (attempt {}/{}): {}", label, attempt + 1, policy.max_attempts, e)

    if last_exc is None:
        raise RuntimeError(f"{label}: no attempt was made")
    raise last_exc
