"""
CORS and protocol header composition for the MCP route.

Every response leaving the route carries the same policy: the request origin
is echoed (or ``*`` when there is none), ``Vary`` gains ``Origin`` whenever a
concrete origin is echoed, and the server's protocol version is stamped on
``Mcp-Protocol-Version``. Header values are handled as ordered sets of tokens
and only joined into their wire form when written.
"""

from collections.abc import Iterable
from typing import Final

from starlette.datastructures import MutableHeaders
from starlette.types import Message, Send

from mcp_bridge.types import LATEST_PROTOCOL_VERSION

MCP_SESSION_ID_HEADER: Final[str] = "mcp-session-id"
MCP_PROTOCOL_VERSION_HEADER: Final[str] = "mcp-protocol-version"

ALLOWED_METHODS: Final[tuple[str, ...]] = ("GET", "POST", "DELETE", "OPTIONS")
ALLOWED_HEADERS: Final[tuple[str, ...]] = ("content-type", MCP_SESSION_ID_HEADER, MCP_PROTOCOL_VERSION_HEADER)
EXPOSED_HEADERS: Final[tuple[str, ...]] = (MCP_SESSION_ID_HEADER, MCP_PROTOCOL_VERSION_HEADER)
MAX_AGE_SECONDS: Final[int] = 86400

WILDCARD_ORIGIN: Final[str] = "*"


def split_header_values(values: str | Iterable[str] | None) -> list[str]:
    """Split one or more comma separated header values into ordered unique tokens."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]

    tokens: list[str] = []
    seen: set[str] = set()
    for value in values:
        for token in value.split(","):
            token = token.strip()
            if token and token.lower() not in seen:
                seen.add(token.lower())
                tokens.append(token)
    return tokens


def merge_vary(existing: str | Iterable[str] | None, value: str = "Origin") -> str:
    """Return the wire value of ``Vary`` with ``value`` present exactly once.

    >>> merge_vary("Accept-Encoding")
    'Accept-Encoding, Origin'
    """
    tokens = split_header_values(existing)
    if value.lower() not in {token.lower() for token in tokens}:
        tokens.append(value)
    return ", ".join(tokens)


def apply_cors_headers(
    headers: MutableHeaders,
    origin: str | None,
    protocol_version: str = LATEST_PROTOCOL_VERSION,
) -> MutableHeaders:
    """Stamp the route's CORS policy and protocol version onto ``headers``."""
    allow_origin = origin or WILDCARD_ORIGIN
    headers["Access-Control-Allow-Origin"] = allow_origin
    if allow_origin != WILDCARD_ORIGIN:
        headers["Vary"] = merge_vary(headers.getlist("vary"))

    headers["Access-Control-Allow-Headers"] = ",".join(ALLOWED_HEADERS)
    headers["Access-Control-Expose-Headers"] = ",".join(EXPOSED_HEADERS)
    headers["Access-Control-Allow-Methods"] = ",".join(ALLOWED_METHODS)
    headers["Access-Control-Max-Age"] = str(MAX_AGE_SECONDS)
    headers["Mcp-Protocol-Version"] = protocol_version
    return headers


def compose_headers(
    origin: str | None,
    existing: MutableHeaders | None = None,
    protocol_version: str = LATEST_PROTOCOL_VERSION,
) -> MutableHeaders:
    """Build the full response header set for a request from ``origin``."""
    headers = existing if existing is not None else MutableHeaders()
    return apply_cors_headers(headers, origin, protocol_version)


def with_cors_headers(send: Send, composed: MutableHeaders) -> Send:
    """Wrap an ASGI ``send`` so every response start carries ``composed``.

    Headers already set by the inner application survive; ``Vary`` is merged
    and every other composed header replaces its counterpart.
    """

    async def send_with_headers(message: Message) -> None:
        if message["type"] == "http.response.start":
            outgoing = MutableHeaders(raw=list(message.get("headers", [])))
            for key, value in composed.items():
                if key == "vary":
                    outgoing["vary"] = merge_vary(outgoing.getlist("vary") + [value], value="Origin")
                else:
                    outgoing[key] = value
            message = {**message, "headers": outgoing.raw}
        await send(message)

    return send_with_headers
