"""
Session lifecycle for the MCP route.

Each accepted HTTP exchange gets its own Session. The session is released
from whichever response-side signal arrives first:

- ``finish``: the final body chunk of the response was sent
- ``close``:  the client disconnected, or the exchange returned
- ``error``:  sending to the client failed

Setup failures become an HTTP 500 as long as no response has started; once
bytes are on the wire, failures are only logged.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from typing import Any, Final, Literal

from starlette.responses import PlainTextResponse
from starlette.types import Message, Receive, Scope, Send

from mcp_bridge.server.session import Session, SessionFactory

logger = logging.getLogger(__name__)

ResponseEvent = Literal["finish", "close", "error"]
RESPONSE_EVENTS: Final[tuple[ResponseEvent, ...]] = ("finish", "close", "error")

Listener = Callable[..., Awaitable[None]]


class ResponseEvents:
    """Observer list for the response-side signals of one exchange."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: ResponseEvent, listener: Listener) -> None:
        if event not in RESPONSE_EVENTS:
            raise ValueError(f"Unknown response event: {event}")
        self._listeners[event].append(listener)

    async def emit(self, event: ResponseEvent, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            await listener(*args)


class ResponseWatcher:
    """Wraps ASGI ``receive``/``send`` and reports what happens to the response."""

    def __init__(self, receive: Receive, send: Send, events: ResponseEvents | None = None):
        self._receive = receive
        self._send = send
        self.events = events or ResponseEvents()
        self.headers_sent = False
        self.finished = False

    async def receive(self) -> Message:
        message = await self._receive()
        if message["type"] == "http.disconnect":
            await self.events.emit("close")
        return message

    async def send(self, message: Message) -> None:
        try:
            await self._send(message)
        except Exception as err:
            await self.events.emit("error", err)
            raise

        if message["type"] == "http.response.start":
            self.headers_sent = True
        elif message["type"] == "http.response.body" and not message.get("more_body", False):
            self.finished = True
            await self.events.emit("finish")


def attach_cleanup(events: ResponseEvents, session: Session) -> None:
    """Release ``session`` on the first of finish, close or error."""

    async def cleanup(*_: Any) -> None:
        await session.cleanup()

    for event in RESPONSE_EVENTS:
        events.on(event, cleanup)


class SessionLifecycleManager:
    """Runs one MCP exchange per HTTP request on a freshly built Session."""

    def __init__(self, factory: SessionFactory):
        self.factory = factory

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        watcher = ResponseWatcher(receive, send)
        watcher.events.on("error", _log_response_error)
        try:
            session = await self.factory.create()
            attach_cleanup(watcher.events, session)

            session.service.connect(session.transport)
            await session.transport.handle_request(scope, watcher.receive, watcher.send)
        except Exception:
            logger.exception("Error handling MCP request")
            if not watcher.headers_sent:
                await _send_internal_error(scope, watcher)
        finally:
            await watcher.events.emit("close")


async def _log_response_error(error: BaseException) -> None:
    logger.debug("Streamable transport error: %r", error)


async def _send_internal_error(scope: Scope, watcher: ResponseWatcher) -> None:
    response = PlainTextResponse("Internal Server Error", status_code=HTTPStatus.INTERNAL_SERVER_ERROR)
    try:
        await response(scope, watcher.receive, watcher.send)
    except Exception:
        logger.debug("Could not send error response", exc_info=True)
