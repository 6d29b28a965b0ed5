"""Tests for SessionFactory and Session cleanup."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from mcp_bridge.exceptions import SessionSetupError
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.server.session import Session, SessionFactory
from mcp_bridge.server.transport import StreamableHTTPServerTransport


class CountingServer(Server):
    def __init__(self, name: str = "counting", version: str = "1.0"):
        super().__init__(name, version)
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1
        await super().close()


async def noop(arguments: dict[str, Any]) -> str:
    return "ok"


@pytest.mark.anyio
async def test_setup_hooks_run_in_order_before_transport_exists():
    order: list[str] = []

    def sync_setup(server: Server) -> None:
        order.append("sync")
        server.register_tool("first", noop)

    async def async_setup(server: Server) -> None:
        order.append("async")
        server.register_tool("second", noop)

    factory = SessionFactory(lambda: Server("svc", "1.0"), setup=[sync_setup, async_setup])
    session = await factory.create()

    assert order == ["sync", "async"]
    assert [tool.name for tool in session.service.tools] == ["first", "second"]
    assert isinstance(session.transport, StreamableHTTPServerTransport)
    assert not session.service.is_connected
    assert session.cleaned_up is False


@pytest.mark.anyio
async def test_each_session_is_fresh():
    factory = SessionFactory(lambda: Server("svc", "1.0"))

    first = await factory.create()
    second = await factory.create()

    assert first.service is not second.service
    assert first.transport is not second.transport


@pytest.mark.anyio
async def test_setup_may_replace_the_server():
    replacement = Server("replacement", "2.0")

    async def async_factory() -> Server:
        return Server("original", "1.0")

    factory = SessionFactory(async_factory, setup=lambda server: replacement)
    session = await factory.create()

    assert session.service is replacement


@pytest.mark.anyio
async def test_setup_returning_something_else_fails():
    factory = SessionFactory(lambda: Server("svc", "1.0"), setup=lambda server: "not a server")

    with pytest.raises(SessionSetupError, match="expected Server"):
        await factory.create()


@pytest.mark.anyio
async def test_factory_returning_something_else_fails():
    factory = SessionFactory(lambda: object())  # type: ignore[arg-type, return-value]

    with pytest.raises(SessionSetupError):
        await factory.create()


@pytest.mark.anyio
async def test_session_id_generator_reaches_the_transport():
    factory = SessionFactory(lambda: Server("svc", "1.0"), session_id_generator=lambda: "abc")
    session = await factory.create()

    assert session.transport._session_id_generator is not None  # type: ignore[reportPrivateUsage]
    assert session.transport._session_id_generator() == "abc"  # type: ignore[reportPrivateUsage]


@pytest.mark.anyio
async def test_cleanup_runs_once():
    server = CountingServer()
    transport = StreamableHTTPServerTransport()
    server.connect(transport)
    session = Session(transport=transport, service=server)

    await session.cleanup()
    await session.cleanup()

    assert session.cleaned_up
    assert transport.is_closed
    assert server.close_calls == 1


@pytest.mark.anyio
async def test_cleanup_closes_service_when_transport_close_fails():
    server = CountingServer()
    transport = StreamableHTTPServerTransport()
    transport.close = AsyncMock(side_effect=RuntimeError("close failed"))  # type: ignore[method-assign]
    session = Session(transport=transport, service=server)

    await session.cleanup()

    transport.close.assert_awaited_once()
    assert server.close_calls == 1
    assert server.is_closed
