"""Tests for exposing widgets as MCP resources and tools."""

from pathlib import Path

import pytest

import mcp_bridge.types as types
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.widgets import (
    WIDGET_MIME_TYPE,
    DirectoryWidgetSource,
    WidgetSource,
    register_widgets,
    widget_resource_name,
    widget_uri,
)


@pytest.fixture
def widget_dir(tmp_path: Path) -> Path:
    (tmp_path / "Card.html").write_text("<div>card</div>", encoding="utf-8")
    (tmp_path / "Album.html").write_text("<div>album</div>", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not a widget", encoding="utf-8")
    return tmp_path


def test_naming():
    assert widget_uri("Card") == "ui://widget/Card.html"
    assert widget_resource_name("Card") == "widget-card"


@pytest.mark.anyio
async def test_directory_source(widget_dir: Path):
    source = DirectoryWidgetSource(widget_dir)

    assert isinstance(source, WidgetSource)
    assert await source.list_widgets() == ["Album", "Card"]
    assert await source.render_widget("Card") == "<div>card</div>"


@pytest.mark.anyio
async def test_register_widgets(widget_dir: Path):
    server = Server("widgets", "1.0")

    returned = await register_widgets(server, DirectoryWidgetSource(widget_dir))

    assert returned is server
    assert [tool.name for tool in server.tools] == ["Album", "Card"]
    card_tool = server.tools[1]
    assert card_tool.title == "Show Card"
    assert card_tool.meta == {
        "openai/outputTemplate": "ui://widget/Card.html",
        "openai/toolInvocation/invoking": "Displaying Card",
        "openai/toolInvocation/invoked": "Displayed Card",
    }
    assert card_tool.input_schema == {"type": "object", "properties": {"payload": {"type": "string"}}}

    card_resource = server.resources[1]
    assert card_resource.name == "widget-card"
    assert card_resource.uri == "ui://widget/Card.html"
    assert card_resource.mime_type == WIDGET_MIME_TYPE
    assert card_resource.description == "ChatGPT widget for Card"


@pytest.mark.anyio
async def test_widget_tool_and_resource_answer_requests(widget_dir: Path):
    server = await register_widgets(Server("widgets", "1.0"), DirectoryWidgetSource(widget_dir))

    call = await server.handle_message(
        types.JSONRPCRequest(id=1, method="tools/call", params={"name": "Card", "arguments": {"payload": "x"}})
    )
    assert isinstance(call, types.JSONRPCResultResponse)
    assert call.result == {
        "content": [{"type": "text", "text": "Displayed the Card!"}],
        "structuredContent": {},
        "isError": False,
    }

    read = await server.handle_message(
        types.JSONRPCRequest(id=2, method="resources/read", params={"uri": "ui://widget/Card.html"})
    )
    assert isinstance(read, types.JSONRPCResultResponse)
    assert read.result == {
        "contents": [{"uri": "ui://widget/Card.html", "mimeType": "text/html+skybridge", "text": "<div>card</div>"}]
    }


@pytest.mark.anyio
async def test_markup_is_read_on_demand(widget_dir: Path):
    server = await register_widgets(Server("widgets", "1.0"), DirectoryWidgetSource(widget_dir))
    (widget_dir / "Card.html").write_text("<div>edited</div>", encoding="utf-8")

    read = await server.handle_message(
        types.JSONRPCRequest(id=1, method="resources/read", params={"uri": "ui://widget/Card.html"})
    )

    assert isinstance(read, types.JSONRPCResultResponse)
    assert read.result["contents"][0]["text"] == "<div>edited</div>"
