"""Mount the MCP route on an ASGI application.

    from mcp_bridge.server.app import BridgeOptions, create_bridge_app

    async def setup(server: Server) -> None:
        server.register_tool("echo", echo)

    app = create_bridge_app(BridgeOptions(server_setup=setup))

``app`` answers ``/__mcp`` with a fresh session per request and ``/health``
with a status document. An existing ASGI application can be passed to
``create_bridge_app`` instead; requests outside the route reach it untouched.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

import click
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import ASGIApp

from mcp_bridge.server.dispatcher import DEFAULT_MCP_ROUTE, McpRouteMiddleware, normalize_route
from mcp_bridge.server.lifecycle import SessionLifecycleManager
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.server.session import ServerFactory, ServerSetup, SessionFactory
from mcp_bridge.server.transport import SessionIdGenerator
from mcp_bridge.types import Implementation

logger = logging.getLogger(__name__)

DEFAULT_SERVER_INFO = Implementation(name="vite", version="0.3.0-streamable")
DEFAULT_PORT = 5173


@dataclass
class BridgeOptions:
    host: str = "localhost"
    port: int | None = None
    https: bool = False
    print_url: bool = True
    server_info: Implementation | None = None
    """Overrides the name/version the default service reports."""
    server_factory: ServerFactory | None = None
    """Builds the service for each session; defaults to an empty Server."""
    server_setup: ServerSetup | Sequence[ServerSetup] | None = None
    """Registers tools and resources on each new service."""
    route_root: str | None = None
    mcp_path: str | None = None
    """Deprecated: use ``route_root``."""
    session_id_generator: SessionIdGenerator | None = None
    extra_routes: list[Route] = field(default_factory=list)

    @property
    def route(self) -> str:
        if self.route_root is not None:
            return normalize_route(self.route_root)
        if self.mcp_path is not None:
            warnings.warn("`mcp_path` is deprecated, use `route_root` instead", DeprecationWarning, stacklevel=2)
            return normalize_route(self.mcp_path)
        return DEFAULT_MCP_ROUTE

    def stream_url(self) -> str:
        scheme = "https" if self.https else "http"
        return f"{scheme}://{self.host}:{self.port or DEFAULT_PORT}{self.route}"


def default_server_factory(options: BridgeOptions) -> ServerFactory:
    info = DEFAULT_SERVER_INFO
    if options.server_info is not None:
        info = info.model_copy(update=options.server_info.model_dump(exclude_none=True))

    def create_server() -> Server:
        return Server(info.name, info.version)

    return create_server


def create_session_factory(options: BridgeOptions) -> SessionFactory:
    return SessionFactory(
        options.server_factory or default_server_factory(options),
        setup=options.server_setup,
        session_id_generator=options.session_id_generator,
    )


def create_bridge_app(options: BridgeOptions | None = None, app: ASGIApp | None = None) -> ASGIApp:
    """Return an ASGI app serving the MCP route in front of ``app``."""
    options = options or BridgeOptions()
    route = options.route

    if app is None:

        async def health(request: Request) -> JSONResponse:
            return JSONResponse({"status": "ok", "route": route})

        app = Starlette(routes=[Route("/health", health, methods=["GET"]), *options.extra_routes])

    lifecycle = SessionLifecycleManager(create_session_factory(options))
    bridged = McpRouteMiddleware(app, lifecycle, path=route)

    if options.print_url:
        logger.info("MCP server is running at %s", options.stream_url())
    return bridged


def run_bridge(options: BridgeOptions, log_level: str = "info") -> None:
    """Serve the bridge with uvicorn until interrupted, announcing the URL when ``print_url`` is set."""
    options.port = options.port or DEFAULT_PORT
    app = create_bridge_app(replace(options, print_url=False))
    if options.print_url:
        click.echo(f"MCP server is running at {options.stream_url()}")
    uvicorn.run(app, host=options.host, port=options.port, log_level=log_level.lower())
