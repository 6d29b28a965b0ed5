"""Expose UI widgets as MCP resources plus a tool that displays each one.

Markup generation is not done here. A ``WidgetSource`` produces the HTML for
a named widget, and ``register_widgets`` wires every widget into a service as

- a resource ``widget-<name>`` at ``ui://widget/<Name>.html``
  (``text/html+skybridge``), read through the source on demand, and
- a tool ``<Name>`` whose ``openai/outputTemplate`` points at that resource.
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

import anyio

from mcp_bridge.server.lowlevel import Server
from mcp_bridge.types import CallToolResult, ReadResourceResult, TextContent, TextResourceContents

WIDGET_MIME_TYPE: Final[str] = "text/html+skybridge"


@runtime_checkable
class WidgetSource(Protocol):
    async def list_widgets(self) -> Sequence[str]: ...

    async def render_widget(self, name: str) -> str: ...


class DirectoryWidgetSource:
    """Serves every ``*.html`` file in a directory as a widget named after the file stem."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    async def list_widgets(self) -> list[str]:
        directory = anyio.Path(self.directory)
        names = [path.stem async for path in directory.glob("*.html")]
        return sorted(names)

    async def render_widget(self, name: str) -> str:
        path = anyio.Path(self.directory / f"{name}.html")
        return await path.read_text(encoding="utf-8")


def widget_uri(name: str) -> str:
    return f"ui://widget/{name}.html"


def widget_resource_name(name: str) -> str:
    return f"widget-{name.lower()}"


def widget_tool_meta(name: str) -> dict[str, Any]:
    return {
        "openai/outputTemplate": widget_uri(name),
        "openai/toolInvocation/invoking": f"Displaying {name}",
        "openai/toolInvocation/invoked": f"Displayed {name}",
    }


WIDGET_INPUT_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "properties": {"payload": {"type": "string"}},
}


async def register_widgets(server: Server, source: WidgetSource) -> Server:
    """Register a resource and a tool on ``server`` for every widget ``source`` lists."""
    for name in await source.list_widgets():
        _register_widget(server, source, name)
    return server


def _register_widget(server: Server, source: WidgetSource, name: str) -> None:
    uri = widget_uri(name)

    async def read_widget(_: str) -> ReadResourceResult:
        content = await source.render_widget(name)
        return ReadResourceResult(contents=[TextResourceContents(uri=uri, mime_type=WIDGET_MIME_TYPE, text=content)])

    async def show_widget(arguments: dict[str, Any]) -> CallToolResult:
        return CallToolResult(content=[TextContent(text=f"Displayed the {name}!")], structured_content={})

    server.register_resource(
        widget_resource_name(name),
        uri,
        read_widget,
        title=name,
        description=f"ChatGPT widget for {name}",
        mime_type=WIDGET_MIME_TYPE,
    )
    server.register_tool(
        name,
        show_widget,
        title=f"Show {name}",
        input_schema=WIDGET_INPUT_SCHEMA,
        meta=widget_tool_meta(name),
    )
