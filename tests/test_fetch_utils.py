import asyncio

import httpx
import pytest

from steamcharts.config import HTTP_MAX_CONNECTIONS
from steamcharts.fetch_utils import build_client, client_limits, fetch_json


def test_pool_grows_with_concurrency():
    assert client_limits().max_connections == HTTP_MAX_CONNECTIONS
    assert client_limits(1).max_connections == HTTP_MAX_CONNECTIONS
    assert client_limits(HTTP_MAX_CONNECTIONS + 44).max_connections == HTTP_MAX_CONNECTIONS + 44


def test_fetch_json_raises_on_error_status():
    async def go():
        transport = httpx.MockTransport(lambda request: httpx.Response(429))
        async with build_client(transport, limits=client_limits(64)) as client:
            return await fetch_json(client, "https://api.example.test/x")

    with pytest.raises(RuntimeError, match="HTTP 429"):
        asyncio.run(go())
