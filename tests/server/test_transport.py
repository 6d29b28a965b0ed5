"""Tests for the JSON response mode of StreamableHTTPServerTransport."""

import json
from typing import Any

import httpx
import pytest
from starlette.types import Receive, Scope, Send

from mcp_bridge.exceptions import TransportClosedError
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.server.transport import StreamableHTTPServerTransport
from mcp_bridge.types import INVALID_REQUEST, PARSE_ERROR


class TransportApp:
    """ASGI app that serves each request on a fresh server and transport."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        self.transports: list[StreamableHTTPServerTransport] = []

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        generator = (lambda: self.session_id) if self.session_id else None
        transport = StreamableHTTPServerTransport(session_id_generator=generator)
        self.transports.append(transport)
        server = Server("test-server", "1.0")
        server.connect(transport)
        await transport.handle_request(scope, receive, send)


@pytest.fixture
def transport_app() -> TransportApp:
    return TransportApp()


async def post(app: TransportApp, body: Any, headers: dict[str, str]) -> httpx.Response:
    content = body if isinstance(body, bytes) else json.dumps(body).encode()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        return await client.post("/__mcp", content=content, headers=headers)


@pytest.mark.anyio
async def test_single_request_gets_single_reply(transport_app: TransportApp, mcp_headers: dict[str, str]):
    response = await post(transport_app, {"jsonrpc": "2.0", "id": 1, "method": "ping"}, mcp_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/json"
    assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": {}}


@pytest.mark.anyio
async def test_batch_replies_in_order(transport_app: TransportApp, mcp_headers: dict[str, str]):
    batch = [
        {"jsonrpc": "2.0", "id": "a", "method": "ping"},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": "b", "method": "tools/list"},
    ]
    response = await post(transport_app, batch, mcp_headers)

    assert response.status_code == 200
    replies = response.json()
    assert [reply["id"] for reply in replies] == ["a", "b"]
    assert replies[1]["result"] == {"tools": []}


@pytest.mark.anyio
async def test_notification_only_is_accepted(transport_app: TransportApp, mcp_headers: dict[str, str]):
    response = await post(transport_app, {"jsonrpc": "2.0", "method": "notifications/initialized"}, mcp_headers)

    assert response.status_code == 202
    assert response.content == b""


@pytest.mark.anyio
async def test_malformed_json_is_a_parse_error(transport_app: TransportApp, mcp_headers: dict[str, str]):
    response = await post(transport_app, b"{not json", mcp_headers)

    assert response.status_code == 200
    payload = response.json()
    assert payload["id"] is None
    assert payload["error"]["code"] == PARSE_ERROR


@pytest.mark.anyio
async def test_empty_batch_is_invalid(transport_app: TransportApp, mcp_headers: dict[str, str]):
    response = await post(transport_app, [], mcp_headers)

    assert response.json()["error"]["code"] == INVALID_REQUEST


@pytest.mark.anyio
async def test_invalid_items_are_answered_with_their_id(transport_app: TransportApp, mcp_headers: dict[str, str]):
    batch = [
        {"jsonrpc": "1.0", "id": 3, "method": "ping"},
        {"jsonrpc": "2.0", "id": 4, "method": "ping"},
        "not a message",
    ]
    response = await post(transport_app, batch, mcp_headers)

    replies = response.json()
    assert len(replies) == 3
    assert replies[0]["id"] == 3
    assert replies[0]["error"]["code"] == INVALID_REQUEST
    assert replies[1] == {"jsonrpc": "2.0", "id": 4, "result": {}}
    assert replies[2]["id"] is None
    assert replies[2]["error"]["code"] == INVALID_REQUEST


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("headers", "status_code"),
    [
        ({"accept": "application/json", "content-type": "application/json"}, 406),
        ({"accept": "application/json, text/event-stream", "content-type": "text/plain"}, 415),
        (
            {
                "accept": "application/json, text/event-stream",
                "content-type": "application/json",
                "mcp-protocol-version": "1999-01-01",
            },
            400,
        ),
    ],
)
async def test_rejected_headers(transport_app: TransportApp, headers: dict[str, str], status_code: int):
    response = await post(transport_app, {"jsonrpc": "2.0", "id": 1, "method": "ping"}, headers)

    assert response.status_code == status_code
    assert response.json()["error"]["code"] == INVALID_REQUEST


@pytest.mark.anyio
async def test_session_id_issued_on_initialize_only_when_configured(
    mcp_headers: dict[str, str], initialize_request
):
    stateless = await post(TransportApp(), initialize_request(), mcp_headers)
    assert "mcp-session-id" not in stateless.headers

    with_ids = TransportApp(session_id="session-1")
    response = await post(with_ids, initialize_request(), mcp_headers)
    assert response.headers["mcp-session-id"] == "session-1"
    assert with_ids.transports[0].session_id == "session-1"

    ping = await post(with_ids, {"jsonrpc": "2.0", "id": 2, "method": "ping"}, mcp_headers)
    assert "mcp-session-id" not in ping.headers


@pytest.mark.anyio
async def test_get_is_not_allowed(transport_app: TransportApp):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=transport_app), base_url="http://testserver") as c:
        response = await c.get("/__mcp", headers={"accept": "text/event-stream"})

    assert response.status_code == 405
    assert response.headers["allow"] == "POST, DELETE"


@pytest.mark.anyio
async def test_delete_closes_the_transport(transport_app: TransportApp):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=transport_app), base_url="http://testserver") as c:
        response = await c.delete("/__mcp")

    assert response.status_code == 200
    assert transport_app.transports[0].is_closed


@pytest.mark.anyio
async def test_closed_transport_refuses_requests():
    transport = StreamableHTTPServerTransport()
    Server("test-server", "1.0").connect(transport)
    closed: list[bool] = []
    transport.on_close(lambda: closed.append(True))

    await transport.close()
    await transport.close()

    assert closed == [True]
    with pytest.raises(TransportClosedError):
        await transport.handle_request({"type": "http", "method": "POST"}, None, None)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_unbound_transport_refuses_requests():
    transport = StreamableHTTPServerTransport()

    with pytest.raises(RuntimeError, match="not connected"):
        await transport.handle_request({"type": "http", "method": "POST"}, None, None)  # type: ignore[arg-type]


def test_transport_binds_once():
    transport = StreamableHTTPServerTransport()
    Server("one", "1.0").connect(transport)

    with pytest.raises(RuntimeError, match="already bound"):
        Server("two", "1.0").connect(transport)


@pytest.mark.anyio
async def test_transport_closed_mid_batch_raises(mcp_headers: dict[str, str]):
    transport = StreamableHTTPServerTransport()
    handled: list[Any] = []

    async def closing_handler(message: Any) -> None:
        handled.append(message)
        await transport.close()

    transport.bind(closing_handler)
    batch = [
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 1, "method": "ping"},
    ]

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await transport.handle_request(scope, receive, send)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        with pytest.raises(TransportClosedError, match="closed while handling"):
            await client.post("/__mcp", content=json.dumps(batch).encode(), headers=mcp_headers)

    assert len(handled) == 1
