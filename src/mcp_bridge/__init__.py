from .client.handshake import HandshakeClient, HandshakeError
from .exceptions import McpError, ResourceError
from .server import BridgeOptions, McpRouteMiddleware, Server, create_bridge_app
from .types import LATEST_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS

__all__ = [
    "BridgeOptions",
    "HandshakeClient",
    "HandshakeError",
    "LATEST_PROTOCOL_VERSION",
    "McpError",
    "McpRouteMiddleware",
    "ResourceError",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "Server",
    "create_bridge_app",
]
