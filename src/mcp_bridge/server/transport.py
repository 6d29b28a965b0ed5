"""
Streamable HTTP Transport Module for the MCP bridge

This module provides the server side of the MCP Streamable HTTP transport in
JSON response mode: every POST carries one JSON-RPC message or a batch, the
body is read completely, each message is dispatched to the connected service,
and the replies are written back as a single ``application/json`` body.

Standalone SSE streams (GET) are not offered in this mode.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from http import HTTPStatus
from typing import Any

from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

import mcp_bridge.types as types
from mcp_bridge.exceptions import TransportClosedError
from mcp_bridge.server.cors import MCP_PROTOCOL_VERSION_HEADER, MCP_SESSION_ID_HEADER

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_SSE = "text/event-stream"

MessageHandler = Callable[[types.JSONRPCMessage], Awaitable[types.JSONRPCResponse | None]]
SessionIdGenerator = Callable[[], str | None]


class StreamableHTTPServerTransport:
    """
    Streamable HTTP server transport for one session.

    The transport reads the request bytes fully before any reply bytes are
    written. One instance serves one HTTP exchange and is discarded with its
    session afterwards.
    """

    def __init__(self, session_id_generator: SessionIdGenerator | None = None):
        """Initialize a new transport.

        Args:
            session_id_generator: Optional function to generate session IDs.
                If None (default), no ``mcp-session-id`` header is issued and
                every request stands alone.
        """
        self._session_id_generator = session_id_generator
        self.session_id: str | None = None
        self._message_handler: MessageHandler | None = None
        self._closed = False
        self._close_callbacks: list[Callable[[], Awaitable[None] | None]] = []

    @property
    def is_closed(self) -> bool:
        return self._closed

    def bind(self, handler: MessageHandler) -> None:
        """Route incoming messages to ``handler``."""
        if self._message_handler is not None:
            raise RuntimeError("Transport is already bound to a service")
        self._message_handler = handler

    def on_close(self, callback: Callable[[], Awaitable[None] | None]) -> None:
        self._close_callbacks.append(callback)

    async def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._message_handler = None
        for callback in self._close_callbacks:
            result = callback()
            if result is not None:
                await result
        logger.debug("Streamable HTTP transport closed")

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Drive one HTTP exchange: read the body, dispatch, write the reply."""
        if self._closed:
            raise TransportClosedError("Transport is closed")
        if self._message_handler is None:
            raise RuntimeError("Transport is not connected to a service")

        request = Request(scope, receive)
        if request.method == "POST":
            await self._handle_post(request, send)
        elif request.method == "GET":
            await self._send_error(
                scope,
                receive,
                send,
                HTTPStatus.METHOD_NOT_ALLOWED,
                "Method not allowed: standalone SSE streams are not supported",
                headers={"Allow": "POST, DELETE"},
            )
        elif request.method == "DELETE":
            # nothing outlives this request, so termination only closes the transport
            response = Response(status_code=HTTPStatus.OK)
            await response(scope, receive, send)
            await self.close()
        else:
            await self._send_error(
                scope,
                receive,
                send,
                HTTPStatus.METHOD_NOT_ALLOWED,
                "Method not allowed",
                headers={"Allow": "GET, POST, DELETE"},
            )

    async def _handle_post(self, request: Request, send: Send) -> None:
        scope, receive = request.scope, request.receive

        accept = request.headers.get("accept", "")
        if CONTENT_TYPE_JSON not in accept or CONTENT_TYPE_SSE not in accept:
            await self._send_error(
                scope,
                receive,
                send,
                HTTPStatus.NOT_ACCEPTABLE,
                f"Not Acceptable: Client must accept both {CONTENT_TYPE_JSON} and {CONTENT_TYPE_SSE}",
            )
            return

        content_type = request.headers.get("content-type", "")
        if CONTENT_TYPE_JSON not in content_type:
            await self._send_error(
                scope,
                receive,
                send,
                HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
                f"Unsupported Media Type: Content-Type must be {CONTENT_TYPE_JSON}",
            )
            return

        protocol_version = request.headers.get(MCP_PROTOCOL_VERSION_HEADER)
        if protocol_version is not None and protocol_version not in types.SUPPORTED_PROTOCOL_VERSIONS:
            supported = ", ".join(types.SUPPORTED_PROTOCOL_VERSIONS)
            await self._send_error(
                scope,
                receive,
                send,
                HTTPStatus.BAD_REQUEST,
                f"Bad Request: Unsupported protocol version: {protocol_version} (supported versions: {supported})",
            )
            return

        body = await request.body()
        try:
            raw = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as err:
            logger.debug("Rejecting malformed JSON body: %s", err)
            await self._send_json(scope, receive, send, _error(None, types.PARSE_ERROR, f"Parse error: {err}").dump())
            return

        is_batch = isinstance(raw, list)
        items: list[Any] = raw if is_batch else [raw]
        if is_batch and not items:
            await self._send_json(
                scope, receive, send, _error(None, types.INVALID_REQUEST, "Invalid Request: empty batch").dump()
            )
            return

        replies: list[dict[str, Any]] = []
        issues_session = False
        for item in items:
            try:
                message = types.parse_message(item)
            except ValidationError as err:
                request_id = item.get("id") if isinstance(item, dict) else None
                replies.append(_error(request_id, types.INVALID_REQUEST, f"Invalid Request: {err}").dump())
                continue

            if isinstance(message, types.JSONRPCRequest) and message.method == "initialize":
                issues_session = True

            if self._message_handler is None:
                raise TransportClosedError("Transport closed while handling a request")
            reply = await self._message_handler(message)
            if reply is not None:
                replies.append(reply.dump())

        headers: dict[str, str] = {}
        if issues_session and self._session_id_generator is not None:
            self.session_id = self._session_id_generator()
        if self.session_id:
            headers[MCP_SESSION_ID_HEADER] = self.session_id

        if not replies:
            response = Response(status_code=HTTPStatus.ACCEPTED, headers=headers)
            await response(scope, receive, send)
            return

        await self._send_json(scope, receive, send, replies if is_batch else replies[0], headers=headers)

    async def _send_json(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        payload: Any,
        status_code: int = HTTPStatus.OK,
        headers: dict[str, str] | None = None,
    ) -> None:
        response = Response(
            content=json.dumps(payload),
            status_code=status_code,
            headers=headers,
            media_type=CONTENT_TYPE_JSON,
        )
        await response(scope, receive, send)

    async def _send_error(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        status_code: int,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Reject the HTTP exchange itself, with a JSON-RPC error body."""
        logger.debug("Rejecting request with %s: %s", status_code, message)
        payload = _error(None, types.INVALID_REQUEST, message).dump()
        await self._send_json(scope, receive, send, payload, status_code=status_code, headers=headers)


def _error(request_id: Any, code: int, message: str) -> types.JSONRPCErrorResponse:
    if not isinstance(request_id, int | str) or isinstance(request_id, bool):
        request_id = None
    return types.JSONRPCErrorResponse(id=request_id, error=types.ErrorData(code=code, message=message))
