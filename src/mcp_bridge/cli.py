"""Command line entry points: run the bridge, list its tools, preview widgets."""

import functools
import json
from pathlib import Path

import anyio
import click

from mcp_bridge.client.handshake import HandshakeClient, HandshakeError, resolve_endpoint
from mcp_bridge.preview.app import run_preview
from mcp_bridge.server.app import BridgeOptions, run_bridge
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.settings import BridgeSettings, ClientSettings, PreviewSettings
from mcp_bridge.types import Implementation
from mcp_bridge.utilities.logging import configure_logging, get_logger
from mcp_bridge.widgets import DirectoryWidgetSource, register_widgets

logger = get_logger(__name__)

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False)


@click.group()
@click.option("--log-level", type=LOG_LEVELS, default="WARNING", show_default=True, help="Logging level")
def main(log_level: str) -> None:
    """Bridge HTTP requests to an MCP service and talk to it."""
    configure_logging(log_level.upper())


@main.command()
@click.option("--base-url", default=None, help="Base URL of the server (env: MCP_BASE_URL)")
@click.option("--route", default=None, help="Path of the MCP route (env: MCP_ROUTE)")
@click.option("--connect-timeout", type=float, default=None, help="Seconds for initialize (env: MCP_CONNECT_TIMEOUT)")
@click.option("--request-timeout", type=float, default=None, help="Seconds per later call (env: MCP_REQUEST_TIMEOUT)")
@click.pass_context
def tools(
    ctx: click.Context,
    base_url: str | None,
    route: str | None,
    connect_timeout: float | None,
    request_timeout: float | None,
) -> None:
    """Perform the MCP handshake and print the tools the server lists."""
    overrides = {
        "base_url": base_url,
        "route": route,
        "connect_timeout": connect_timeout,
        "request_timeout": request_timeout,
    }
    settings = ClientSettings(**{key: value for key, value in overrides.items() if value is not None})

    try:
        endpoint = resolve_endpoint(settings.base_url, settings.route)
        click.echo(f"Using MCP endpoint: {endpoint}", err=True)
        client = HandshakeClient(
            endpoint,
            connect_timeout=settings.connect_timeout,
            request_timeout=settings.request_timeout,
        )
        listed = anyio.run(client.handshake)
    except HandshakeError as err:
        click.echo(f"Failed to list tools: {err}", err=True)
        ctx.exit(1)

    click.echo(json.dumps(listed, indent=2))


@main.command()
@click.option("--host", default=None, help="Interface to bind (env: MCP_HOST)")
@click.option("--port", type=int, default=None, help="Port to listen on (env: MCP_PORT)")
@click.option("--route", default=None, help="Path of the MCP route (env: MCP_ROUTE)")
@click.option(
    "--widgets",
    "widgets_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory of *.html widgets to expose as resources and tools",
)
def serve(host: str | None, port: int | None, route: str | None, widgets_dir: Path | None) -> None:
    """Serve the MCP route, one fresh session per request."""
    overrides = {"host": host, "port": port, "route": route}
    settings = BridgeSettings(**{key: value for key, value in overrides.items() if value is not None})

    setup = None
    if widgets_dir is not None:
        setup = functools.partial(_register_directory_widgets, DirectoryWidgetSource(widgets_dir))

    options = BridgeOptions(
        host=settings.host,
        port=settings.port,
        route_root=settings.route,
        server_info=Implementation(name=settings.server_name, version=settings.server_version),
        server_setup=setup,
    )
    run_bridge(options, log_level=settings.log_level)


async def _register_directory_widgets(source: DirectoryWidgetSource, server: Server) -> Server:
    return await register_widgets(server, source)


@main.command()
@click.option("--port", type=int, default=None, help="Port to listen on (env: WIDGET_PREVIEW_PORT)")
@click.option(
    "--mock-script",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Script injected ahead of the widget globals (env: WIDGET_MOCK_SCRIPT)",
)
def preview(port: int | None, mock_script: Path | None) -> None:
    """Serve previews of the widgets exposed by a running bridge."""
    overrides = {"port": port, "mock_script": mock_script}
    # the widget variables are aliases, so command line values are applied after loading
    settings = PreviewSettings().model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )
    run_preview(settings)


if __name__ == "__main__":
    main()
