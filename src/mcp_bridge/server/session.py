"""Request-scoped sessions and the factory that builds them."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from mcp_bridge.exceptions import SessionSetupError
from mcp_bridge.server.lowlevel import Server
from mcp_bridge.server.transport import SessionIdGenerator, StreamableHTTPServerTransport

logger = logging.getLogger(__name__)

ServerFactory = Callable[[], Server | Awaitable[Server]]
ServerSetup = Callable[[Server], Awaitable[Server | None] | Server | None]


@dataclass
class Session:
    """One transport and one service, owned by a single HTTP exchange."""

    transport: StreamableHTTPServerTransport
    service: Server
    cleaned_up: bool = False

    async def cleanup(self) -> None:
        """Release the transport, then the service.

        Only the first call does anything. Close failures are logged and never
        raised, and a failure on one side does not stop the other from closing.
        """
        if self.cleaned_up:
            return
        self.cleaned_up = True

        try:
            await self.transport.close()
        except Exception:
            logger.debug("Error closing transport", exc_info=True)
        try:
            await self.service.close()
        except Exception:
            logger.debug("Error closing MCP server", exc_info=True)


class SessionFactory:
    """Builds a fresh, fully configured Session for every call to ``create``.

    Args:
        server_factory: returns a new service instance (sync or async).
        setup: hooks run in order against the new service; a hook may return
               a replacement service, which the following hooks then receive.
        session_id_generator: passed to every transport; None issues no
               session id.
    """

    def __init__(
        self,
        server_factory: ServerFactory,
        setup: ServerSetup | Sequence[ServerSetup] | None = None,
        session_id_generator: SessionIdGenerator | None = None,
    ):
        self.server_factory = server_factory
        if setup is None:
            self.setup: list[ServerSetup] = []
        elif callable(setup):
            self.setup = [setup]
        else:
            self.setup = list(setup)
        self.session_id_generator = session_id_generator

    async def create_server(self) -> Server:
        server = await _maybe_await(self.server_factory())
        if not isinstance(server, Server):
            raise SessionSetupError(f"Server factory returned {type(server).__name__}, expected Server")

        for hook in self.setup:
            replacement = await _maybe_await(hook(server))
            if replacement is None:
                continue
            if not isinstance(replacement, Server):
                raise SessionSetupError(f"Server setup returned {type(replacement).__name__}, expected Server")
            server = replacement
        return server

    async def create(self) -> Session:
        # registrations must be complete before a transport exists to deliver messages
        service = await self.create_server()
        transport = StreamableHTTPServerTransport(session_id_generator=self.session_id_generator)
        return Session(transport=transport, service=service)


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value
