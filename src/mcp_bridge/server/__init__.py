from .app import BridgeOptions, create_bridge_app, run_bridge
from .dispatcher import McpRouteMiddleware
from .lifecycle import SessionLifecycleManager
from .lowlevel import Server
from .session import Session, SessionFactory
from .transport import StreamableHTTPServerTransport

__all__ = [
    "BridgeOptions",
    "McpRouteMiddleware",
    "Server",
    "Session",
    "SessionFactory",
    "SessionLifecycleManager",
    "StreamableHTTPServerTransport",
    "create_bridge_app",
    "run_bridge",
]
