"""ASGI middleware binding the MCP route to the session lifecycle."""

import logging
from http import HTTPStatus

from starlette.datastructures import Headers
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from mcp_bridge.server.cors import ALLOWED_METHODS, compose_headers, with_cors_headers
from mcp_bridge.server.lifecycle import SessionLifecycleManager
from mcp_bridge.types import LATEST_PROTOCOL_VERSION

logger = logging.getLogger(__name__)

DEFAULT_MCP_ROUTE = "/__mcp"


def normalize_route(path: str) -> str:
    return "/" + path.strip("/")


def route_matches(route: str, path: str) -> bool:
    """Whether ``path`` is the route itself or lies below it."""
    if route == "/":
        return True
    return path == route or path.startswith(route + "/")


class McpRouteMiddleware:
    """Intercepts the MCP route and passes every other request through untouched.

    - OPTIONS on the route answers the CORS preflight with 204 and no body.
    - GET, POST and DELETE get the composed headers and are handed to the
      session lifecycle manager.
    - Other methods, other paths and non-http scopes go to ``app``.
    """

    def __init__(
        self,
        app: ASGIApp,
        lifecycle: SessionLifecycleManager,
        path: str = DEFAULT_MCP_ROUTE,
        protocol_version: str = LATEST_PROTOCOL_VERSION,
    ):
        self.app = app
        self.lifecycle = lifecycle
        self.path = normalize_route(path)
        self.protocol_version = protocol_version

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._intercepts(scope):
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        composed = compose_headers(origin, protocol_version=self.protocol_version)

        if scope["method"] == "OPTIONS":
            response = Response(status_code=HTTPStatus.NO_CONTENT, headers=dict(composed.items()))
            await response(scope, receive, send)
            return

        logger.debug("%s %s handed to MCP session", scope["method"], scope["path"])
        await self.lifecycle.handle(scope, receive, with_cors_headers(send, composed))

    def _intercepts(self, scope: Scope) -> bool:
        if scope["type"] != "http":
            return False
        if scope.get("method") not in ALLOWED_METHODS:
            return False
        return route_matches(self.path, scope["path"])
