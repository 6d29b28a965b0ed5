"""Tests for the widget preview server, backed by an in-process bridge."""

import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from starlette.applications import Starlette

from mcp_bridge.preview.app import create_preview_app
from mcp_bridge.server.app import BridgeOptions, create_bridge_app
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.settings import PreviewSettings
from mcp_bridge.widgets import register_widgets

CARD_HTML = "<html><head><title>Card</title></head><body><div id='root'></div></body></html>"


class StaticWidgets:
    def __init__(self, widgets: dict[str, str]):
        self.widgets = widgets

    async def list_widgets(self) -> list[str]:
        return list(self.widgets)

    async def render_widget(self, name: str) -> str:
        return self.widgets[name]


def preview_app(settings: PreviewSettings) -> Starlette:
    async def setup(server: Server) -> Server:
        return await register_widgets(server, StaticWidgets({"Card": CARD_HTML}))

    bridge = create_bridge_app(BridgeOptions(print_url=False, server_setup=setup))

    def bridge_client(**kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=bridge), **kwargs)

    return create_preview_app(settings, http_client_factory=bridge_client)


async def get(app: Starlette, url: str, **kwargs: Any) -> httpx.Response:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://preview") as client:
        return await client.get(url, **kwargs)


@pytest.mark.anyio
async def test_widget_preview_injects_globals():
    app = preview_app(PreviewSettings())
    params = {"toolInput": json.dumps({"city": "Oslo"}), "widgetState": json.dumps({"open": True})}

    response = await get(app, "/widget/Card", params=params)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert response.text.startswith("<html><head><script>\nwindow.openai.toolInput = {\"city\": \"Oslo\"};")
    assert "window.openai.toolOutput = null;" in response.text
    assert "window.openai.widgetState = {\"open\": true};" in response.text
    assert response.text.endswith("</script><title>Card</title></head><body><div id='root'></div></body></html>")


@pytest.mark.anyio
async def test_widget_preview_includes_mock_script(tmp_path: Path):
    mock = tmp_path / "mock-openai.js"
    mock.write_text("window.openai = { callTool() {} };", encoding="utf-8")
    app = preview_app(PreviewSettings().model_copy(update={"mock_script": mock}))

    response = await get(app, "/widget/Card")

    assert response.status_code == 200
    assert "<head><script>window.openai = { callTool() {} };</script><script>" in response.text


@pytest.mark.anyio
async def test_unknown_widget_is_a_server_error():
    app = preview_app(PreviewSettings())

    response = await get(app, "/widget/Missing")

    assert response.status_code == 500
    assert response.text == "Failed to load widget preview: MCP error: Resource not found: ui://widget/Missing.html"


@pytest.mark.anyio
async def test_bad_query_json_is_a_server_error():
    app = preview_app(PreviewSettings())

    response = await get(app, "/widget/Card", params={"toolInput": "{broken"})

    assert response.status_code == 500
    assert response.text.startswith("Failed to load widget preview:")


@pytest.mark.anyio
async def test_health_reports_port():
    app = preview_app(PreviewSettings().model_copy(update={"port": 6123}))

    response = await get(app, "/health")

    assert response.json() == {"status": "ok", "port": 6123}
