from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from .config import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_MAX_CONNECTIONS,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
)


def client_limits(concurrency: int = 0) -> httpx.Limits:
    """Pool size that never caps the fetcher's window below ``concurrency``."""
    return httpx.Limits(max_connections=max(HTTP_MAX_CONNECTIONS, concurrency))


def build_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    limits: Optional[httpx.Limits] = None,
) -> httpx.AsyncClient:
    """
    Shared async client for one pipeline run.

    ``transport`` is only passed in tests (``httpx.MockTransport``).
    """
    return httpx.AsyncClient(
        headers={"User-Agent": HTTP_USER_AGENT},
        follow_redirects=True,
        timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
        limits=limits if limits is not None else client_limits(),
        transport=transport,
    )


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    GET ``url`` and decode the body as JSON.

    Raises ``RuntimeError`` on a non-2xx status, and lets httpx / JSON decode
    errors propagate; callers decide whether a failure is fatal.
    """
    logger.debug("GET {} params={}", url, params)
    r = await client.get(url, params=params)
    if r.status_code >= 400:
        raise RuntimeError(f"HTTP {r.status_code} for {url}")
    return r.json()
