"""Utilities for creating standardized httpx AsyncClient instances."""

from typing import Any, Protocol

import httpx

__all__ = ["McpHttpClientFactory", "create_mcp_http_client"]


class McpHttpClientFactory(Protocol):
    def __call__(self, **kwargs: Any) -> httpx.AsyncClient: ...


def create_mcp_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create an httpx AsyncClient with the bridge defaults.

    - follow_redirects=True
    - no httpx-level timeout; callers bound each call with ``anyio.fail_after``
      so that a timeout is reported against the step that exceeded it

    Any keyword argument accepted by httpx.AsyncClient overrides the defaults.
    The returned client must be used as an async context manager.

    Examples:
        async with create_mcp_http_client() as client:
            response = await client.post("http://localhost:5173/__mcp", json=payload)

        # in tests, route requests to an in-process app
        transport = httpx.ASGITransport(app=app)
        async with create_mcp_http_client(transport=transport) as client:
            ...
    """
    default_kwargs: dict[str, Any] = {
        "follow_redirects": True,
        "timeout": httpx.Timeout(None),
    }
    default_kwargs.update(kwargs)
    return httpx.AsyncClient(**default_kwargs)
