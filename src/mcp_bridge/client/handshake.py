"""
JSON-RPC handshake client for the MCP route.

Runs the three calls every conversation with the bridge starts with:

1. ``initialize``                 negotiates the protocol version and reads the
                                  optional ``mcp-session-id`` header
2. ``notifications/initialized``  acknowledges, carrying the negotiated headers
3. ``tools/list``                 lists the tools the service exposes

Each call is bounded by its own timeout. A failed step aborts the sequence, so
a rejected ``initialize`` never reaches the later calls.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final
from urllib.parse import urljoin, urlsplit

import anyio
import httpx

from mcp_bridge.server.cors import MCP_PROTOCOL_VERSION_HEADER, MCP_SESSION_ID_HEADER
from mcp_bridge.types import JSONRPC_VERSION, LATEST_PROTOCOL_VERSION, Implementation, RequestId
from mcp_bridge.utilities.httpx_utils import create_mcp_http_client

logger = logging.getLogger(__name__)

CLIENT_INFO: Final[Implementation] = Implementation(name="simple-http-client", version="0.0.0")

INIT_REQUEST_ID: Final[str] = "init"
TOOLS_REQUEST_ID: Final[str] = "tools"

ACCEPT = "application/json, text/event-stream"
CONTENT_TYPE = "application/json"


class HandshakeError(Exception):
    """Base exception for failures while talking to the MCP route."""


class EndpointConfigurationError(HandshakeError):
    """Raised when the base URL and route do not form a valid endpoint."""


class HandshakeTimeoutError(HandshakeError):
    """Raised when a single step did not complete within its bound."""

    def __init__(self, label: str, timeout: float):
        super().__init__(f"Timed out while attempting to {label}")
        self.label = label
        self.timeout = timeout


class RequestFailedError(HandshakeError):
    """Raised when the request could not be delivered or its reply not received."""


class HTTPStatusError(HandshakeError):
    """Raised for any status outside 2xx other than 202 Accepted."""

    def __init__(self, status_code: int, reason: str):
        super().__init__(f"HTTP {status_code} {reason}".rstrip())
        self.status_code = status_code
        self.reason = reason


class InvalidResponseError(HandshakeError):
    """Raised when a reply body is missing, malformed or lacks the expected message."""


class RpcError(HandshakeError):
    """Raised when the expected message carries a JSON-RPC error object."""

    def __init__(self, label: str, error: Any):
        super().__init__(f"{label} failed: {json.dumps(error)}")
        self.error = error


@dataclass(frozen=True)
class NegotiatedContext:
    """The protocol version and session id agreed during ``initialize``."""

    protocol_version: str
    session_id: str | None = None

    def headers(self) -> dict[str, str]:
        headers = {MCP_PROTOCOL_VERSION_HEADER: self.protocol_version}
        if self.session_id:
            headers[MCP_SESSION_ID_HEADER] = self.session_id
        return headers


@dataclass
class RpcResponse:
    status_code: int
    headers: httpx.Headers
    json: Any


def resolve_endpoint(base_url: str, route: str) -> str:
    """Join ``route`` onto ``base_url``.

    >>> resolve_endpoint("http://localhost:5173", "__mcp")
    'http://localhost:5173/__mcp'
    """
    normalized_route = route if route.startswith("/") else f"/{route}"
    base = base_url if base_url.endswith("/") else f"{base_url}/"
    parts = urlsplit(base)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise EndpointConfigurationError(f"Invalid MCP endpoint configuration: {base_url!r} is not an http(s) URL")
    return urljoin(base, normalized_route)


def select_message(payload: Any, request_id: RequestId | None = None) -> dict[str, Any] | None:
    """Pick the message answering ``request_id`` out of a single or batched body."""
    if not payload:
        return None
    messages: Sequence[Any] = payload if isinstance(payload, list) else [payload]
    if request_id is None:
        return messages[0] if messages else None
    for message in messages:
        if isinstance(message, Mapping) and message.get("id") == request_id:
            return dict(message)
    return None


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300 or status_code == 202


def _result_object(message: dict[str, Any], label: str) -> dict[str, Any]:
    result = message.get("result")
    if result is None:
        return {}
    if not isinstance(result, dict):
        raise InvalidResponseError(f"{label} result is not an object: {result!r}")
    return result


class HandshakeClient:
    """Talks JSON-RPC over HTTP POST to one MCP endpoint.

    Args:
        endpoint: full URL of the MCP route.
        connect_timeout: seconds allowed for ``initialize``; None or <= 0 is unbounded.
        request_timeout: seconds allowed for each later call; None or <= 0 is unbounded.
        client_info: implementation info sent with ``initialize``.
        protocol_version: the version requested from the server.
        http_client: an existing client to use; otherwise one is created per call
            to ``handshake``.
    """

    def __init__(
        self,
        endpoint: str,
        connect_timeout: float | None = 5.0,
        request_timeout: float | None = 5.0,
        client_info: Implementation = CLIENT_INFO,
        protocol_version: str = LATEST_PROTOCOL_VERSION,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.endpoint = endpoint
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.client_info = client_info
        self.protocol_version = protocol_version
        self._http_client = http_client

    async def send_rpc(
        self,
        client: httpx.AsyncClient,
        payload: dict[str, Any],
        *,
        label: str,
        timeout: float | None,
        context: NegotiatedContext | None = None,
        expect_body: bool = True,
    ) -> RpcResponse:
        """POST one JSON-RPC payload and decode the reply.

        Raises:
            HandshakeTimeoutError: the call did not complete within ``timeout``.
            RequestFailedError: the endpoint could not be reached.
            HTTPStatusError: the reply status is neither 2xx nor 202.
            InvalidResponseError: the body is present but is not JSON.
        """
        headers = {"content-type": CONTENT_TYPE, "accept": ACCEPT}
        if context is not None:
            headers.update(context.headers())

        body = json.dumps(payload)
        logger.debug("[%s] POST %s", label, self.endpoint)
        logger.debug("[%s] Request headers: %s", label, headers)
        logger.debug("[%s] Request body: %s", label, body)

        request = client.build_request("POST", self.endpoint, content=body, headers=headers)
        try:
            with anyio.fail_after(timeout if timeout and timeout > 0 else None):
                response = await client.send(request, stream=True)
                try:
                    text = await self._read_body(response, expect_body)
                finally:
                    with anyio.CancelScope(shield=True):
                        await response.aclose()
        except (TimeoutError, httpx.TimeoutException) as err:
            raise HandshakeTimeoutError(label, timeout or 0) from err
        except httpx.HTTPError as err:
            raise RequestFailedError(f"Request for {label} failed: {err!r}") from err

        logger.debug("[%s] Response status: %s", label, response.status_code)
        logger.debug("[%s] Response headers: %s", label, dict(response.headers))
        if text:
            logger.debug("[%s] Response body: %s", label, text)

        if not _is_success(response.status_code):
            raise HTTPStatusError(response.status_code, response.reason_phrase)

        decoded = None
        if text:
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as err:
                if expect_body:
                    raise InvalidResponseError(f"Failed to parse JSON for {label}: {err}") from err
                logger.debug("[%s] Ignoring non-JSON body", label)

        return RpcResponse(status_code=response.status_code, headers=response.headers, json=decoded)

    @staticmethod
    async def _read_body(response: httpx.Response, expect_body: bool) -> str:
        if expect_body:
            await response.aread()
            return response.text
        # the acknowledgement carries no meaningful body; a broken one is not fatal
        try:
            await response.aread()
            return response.text
        except (httpx.StreamError, httpx.TransportError):
            logger.debug("Could not read response body", exc_info=True)
            return ""

    async def initialize(self, client: httpx.AsyncClient) -> NegotiatedContext:
        payload = {
            "jsonrpc": JSONRPC_VERSION,
            "id": INIT_REQUEST_ID,
            "method": "initialize",
            "params": {
                "protocolVersion": self.protocol_version,
                "capabilities": {"tools": {}},
                "clientInfo": self.client_info.dump(),
            },
        }
        response = await self.send_rpc(client, payload, label="initialize", timeout=self.connect_timeout)

        message = select_message(response.json, INIT_REQUEST_ID)
        if message is None:
            raise InvalidResponseError(f'Initialize response did not include an "{INIT_REQUEST_ID}" message.')
        if "error" in message:
            raise RpcError("Initialize", message["error"])

        result = _result_object(message, "Initialize")
        protocol_version = result.get("protocolVersion")
        if protocol_version is not None and not isinstance(protocol_version, str):
            raise InvalidResponseError(f"Initialize result has a non-string protocolVersion: {protocol_version!r}")
        protocol_version = protocol_version or self.protocol_version
        session_id = response.headers.get(MCP_SESSION_ID_HEADER) or None
        return NegotiatedContext(protocol_version=protocol_version, session_id=session_id)

    async def notify_initialized(self, client: httpx.AsyncClient, context: NegotiatedContext) -> None:
        payload = {"jsonrpc": JSONRPC_VERSION, "method": "notifications/initialized"}
        await self.send_rpc(
            client,
            payload,
            label="notifications/initialized",
            timeout=self.request_timeout,
            context=context,
            expect_body=False,
        )

    async def list_tools(self, client: httpx.AsyncClient, context: NegotiatedContext) -> list[dict[str, Any]]:
        payload = {"jsonrpc": JSONRPC_VERSION, "id": TOOLS_REQUEST_ID, "method": "tools/list", "params": {}}
        response = await self.send_rpc(
            client, payload, label="tools/list", timeout=self.request_timeout, context=context
        )

        message = select_message(response.json, TOOLS_REQUEST_ID)
        if message is None:
            raise InvalidResponseError(f'tools/list response did not include a "{TOOLS_REQUEST_ID}" message.')
        if "error" in message:
            raise RpcError("tools/list", message["error"])

        tools = _result_object(message, "tools/list").get("tools")
        if tools is None:
            return []
        if not isinstance(tools, list):
            raise InvalidResponseError(f"tools/list result has a non-list tools member: {tools!r}")
        return tools

    async def handshake(self) -> list[dict[str, Any]]:
        """Run initialize, the initialized notification and tools/list, in that order."""
        if self._http_client is not None:
            return await self._handshake(self._http_client)
        async with create_mcp_http_client() as client:
            return await self._handshake(client)

    async def _handshake(self, client: httpx.AsyncClient) -> list[dict[str, Any]]:
        context = await self.initialize(client)
        logger.debug("Negotiated protocol %s (session %s)", context.protocol_version, context.session_id)
        await self.notify_initialized(client, context)
        return await self.list_tools(client, context)
