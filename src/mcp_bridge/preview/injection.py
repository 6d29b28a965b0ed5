"""Fetch a widget's markup over the MCP route and splice preview scripts into it."""

from __future__ import annotations

import json
from html.parser import HTMLParser
from typing import Any, Final

import httpx
from pydantic import BaseModel, ConfigDict

from mcp_bridge.client.handshake import HandshakeClient, HandshakeError, select_message
from mcp_bridge.types import JSONRPC_VERSION
from mcp_bridge.widgets import widget_uri

RESOURCE_REQUEST_ID: Final[str] = "get-resource"


class PreviewError(Exception):
    """Raised when a widget preview cannot be produced."""


class WidgetGlobals(BaseModel):
    """Values the preview exposes on ``window.openai`` before the widget runs.

    Passed by value into each render; nothing is shared between renders.
    """

    model_config = ConfigDict(frozen=True)

    tool_input: Any = None
    tool_output: Any = None
    widget_state: Any = None

    def script(self) -> str:
        tool_input = self.tool_input if self.tool_input is not None else {}
        return (
            f"\nwindow.openai.toolInput = {_script_json(tool_input)};"
            f"\nwindow.openai.toolOutput = {_script_json(self.tool_output)};"
            f"\nwindow.openai.widgetState = {_script_json(self.widget_state)};\n"
        )


def _script_json(value: Any) -> str:
    # "</" would end the inline <script> element early
    return json.dumps(value).replace("</", "<\\/")


async def fetch_resource_text(
    client: httpx.AsyncClient,
    endpoint: str,
    name: str,
    timeout: float | None = None,
) -> str:
    """Read ``ui://widget/<name>.html`` through ``resources/read`` and return its text."""
    payload = {
        "jsonrpc": JSONRPC_VERSION,
        "id": RESOURCE_REQUEST_ID,
        "method": "resources/read",
        "params": {"uri": widget_uri(name)},
    }
    rpc = HandshakeClient(endpoint, request_timeout=timeout)
    try:
        response = await rpc.send_rpc(client, payload, label="resources/read", timeout=timeout)
    except HandshakeError as err:
        raise PreviewError(str(err)) from err

    message = select_message(response.json, RESOURCE_REQUEST_ID)
    if message is None:
        raise PreviewError(f'resources/read response did not include a "{RESOURCE_REQUEST_ID}" message.')
    if "error" in message:
        error = message["error"] or {}
        raise PreviewError(f"MCP error: {error.get('message', error)}")

    contents = (message.get("result") or {}).get("contents") or []
    if not contents or "text" not in contents[0]:
        raise PreviewError(f"Resource {widget_uri(name)} has no text contents")
    return contents[0]["text"]


class _HeadLocator(HTMLParser):
    """Records where the first <head> and <html> start tags end, as string offsets."""

    def __init__(self, html: str) -> None:
        super().__init__(convert_charrefs=True)
        self._line_starts = [0] + [index + 1 for index, char in enumerate(html) if char == "\n"]
        self.head_end: int | None = None
        self.html_end: int | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "head" and self.head_end is None:
            self.head_end = self._tag_end()
        elif tag == "html" and self.html_end is None:
            self.html_end = self._tag_end()

    def _tag_end(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column + len(self.get_starttag_text() or "")


def inject_scripts(html: str, mock_script: str | None, globals_: WidgetGlobals) -> str:
    """Insert the mock runtime script and the globals script at the top of <head>.

    The mock script comes first so the globals script can assign onto the
    object it defines. A document without <head> gets one.
    """
    scripts = ""
    if mock_script:
        scripts += f"<script>{mock_script}</script>"
    scripts += f"<script>{globals_.script()}</script>"

    locator = _HeadLocator(html)
    locator.feed(html)
    locator.close()

    if locator.head_end is not None:
        return html[: locator.head_end] + scripts + html[locator.head_end :]
    if locator.html_end is not None:
        return html[: locator.html_end] + f"<head>{scripts}</head>" + html[locator.html_end :]
    return f"<head>{scripts}</head>" + html
