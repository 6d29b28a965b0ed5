"""Starlette app serving widget previews rendered from the MCP route."""

import json
import logging
from typing import Any

import anyio
import click
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from mcp_bridge.client.handshake import resolve_endpoint
from mcp_bridge.preview.injection import WidgetGlobals, fetch_resource_text, inject_scripts
from mcp_bridge.settings import PreviewSettings
from mcp_bridge.utilities.httpx_utils import McpHttpClientFactory, create_mcp_http_client

logger = logging.getLogger(__name__)


def _query_json(request: Request, key: str, default: Any) -> Any:
    raw = request.query_params.get(key)
    if not raw:
        return default
    return json.loads(raw)


def create_preview_app(
    settings: PreviewSettings | None = None,
    http_client_factory: McpHttpClientFactory = create_mcp_http_client,
) -> Starlette:
    settings = settings or PreviewSettings()
    endpoint = resolve_endpoint(settings.base_url, settings.route)

    async def read_mock_script() -> str | None:
        if settings.mock_script is None:
            return None
        return await anyio.Path(settings.mock_script).read_text(encoding="utf-8")

    async def widget(request: Request) -> Response:
        name = request.path_params["name"]
        try:
            globals_ = WidgetGlobals(
                tool_input=_query_json(request, "toolInput", {}),
                tool_output=_query_json(request, "toolOutput", None),
                widget_state=_query_json(request, "widgetState", None),
            )
            async with http_client_factory() as client:
                html = await fetch_resource_text(client, endpoint, name, timeout=settings.request_timeout)
            mock_script = await read_mock_script()
            return HTMLResponse(inject_scripts(html, mock_script, globals_))
        except Exception as err:
            logger.exception("Error serving widget preview")
            return PlainTextResponse(f"Failed to load widget preview: {err}", status_code=500)

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "port": settings.port})

    return Starlette(
        routes=[
            Route("/widget/{name}", widget, methods=["GET"]),
            Route("/health", health, methods=["GET"]),
        ]
    )


def run_preview(settings: PreviewSettings | None = None, host: str = "localhost") -> None:
    settings = settings or PreviewSettings()
    click.echo(f"Widget preview server running at http://{host}:{settings.port}")
    uvicorn.run(create_preview_app(settings), host=host, port=settings.port)
