from collections.abc import Callable
from typing import Any

import httpx
import pytest
from starlette.types import ASGIApp

from mcp_bridge.types import LATEST_PROTOCOL_VERSION


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def mcp_headers() -> dict[str, str]:
    return {
        "accept": "application/json, text/event-stream",
        "content-type": "application/json",
    }


@pytest.fixture
def asgi_client() -> Callable[[ASGIApp], httpx.AsyncClient]:
    """Build an httpx client that calls an ASGI app in-process."""

    def make(app: ASGIApp) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")

    return make


@pytest.fixture
def initialize_request() -> Callable[..., dict[str, Any]]:
    """Build an initialize request as a client would send it."""

    def make(request_id: str | int = "init", protocol_version: str = LATEST_PROTOCOL_VERSION) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "initialize",
            "params": {
                "protocolVersion": protocol_version,
                "capabilities": {},
                "clientInfo": {"name": "test-client", "version": "1.0"},
            },
        }

    return make
