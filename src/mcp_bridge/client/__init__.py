from .handshake import (
    HandshakeClient,
    HandshakeError,
    HandshakeTimeoutError,
    HTTPStatusError,
    InvalidResponseError,
    NegotiatedContext,
    RequestFailedError,
    RpcError,
    resolve_endpoint,
    select_message,
)

__all__ = [
    "HandshakeClient",
    "HandshakeError",
    "HandshakeTimeoutError",
    "HTTPStatusError",
    "InvalidResponseError",
    "NegotiatedContext",
    "RequestFailedError",
    "RpcError",
    "resolve_endpoint",
    "select_message",
]
