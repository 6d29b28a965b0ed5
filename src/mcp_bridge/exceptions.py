"""Exceptions shared by the bridge server, its service and the handshake client."""

from typing import Any

from mcp_bridge.types import RESOURCE_NOT_FOUND, ErrorData


class McpError(Exception):
    """Exception raised when an MCP protocol error is produced or received.

    It wraps the ErrorData that ends up in (or came from) the JSON-RPC
    ``error`` member of a response.

    Attributes:
        error: The ErrorData object containing error code, message, and
               optional additional data
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error


class ResourceError(McpError):
    """Error in resource operations.

    Defaults to RESOURCE_NOT_FOUND (-32002); pass INTERNAL_ERROR for reader failures.
    """

    def __init__(self, message: str, code: int = RESOURCE_NOT_FOUND, data: Any | None = None):
        super().__init__(ErrorData(code=code, message=message, data=data))


class TransportClosedError(RuntimeError):
    """Raised when a closed transport is asked to handle another exchange."""


class SessionSetupError(Exception):
    """Raised when a session could not be fully configured."""
