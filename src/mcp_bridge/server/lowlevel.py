"""
MCP Service Module

The service is the logical endpoint behind one session: it holds the tool and
resource registrations made while the session is being set up and answers the
JSON-RPC messages the transport hands to it.

Usage:
1. Create a Server instance and register what it exposes:
   server = Server("vite", "0.3.0-streamable")

   async def show(arguments: dict[str, Any]) -> types.CallToolResult:
       ...

   server.register_tool("Show", show, title="Show widget")
   server.register_resource("widget-show", "ui://widget/Show.html", read_show)

2. Connect it to a transport, which then drives the exchange:
   server.connect(transport)
   await transport.handle_request(scope, receive, send)

Registrations are plain ordered mappings keyed by name; listing preserves the
registration order.
"""

from __future__ import annotations as _annotations

import base64
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

from pydantic import ValidationError

import mcp_bridge.types as types
from mcp_bridge.exceptions import McpError, ResourceError
from mcp_bridge.utilities.logging import get_logger

if TYPE_CHECKING:
    from mcp_bridge.server.transport import StreamableHTTPServerTransport

logger = get_logger(__name__)

ToolResult: TypeAlias = types.CallToolResult | dict[str, Any] | str
ToolHandler: TypeAlias = Callable[[dict[str, Any]], Awaitable[ToolResult]]
ResourceContent: TypeAlias = types.ReadResourceResult | str | bytes
ResourceReader: TypeAlias = Callable[[str], Awaitable[ResourceContent]]


@dataclass
class RegisteredTool:
    tool: types.Tool
    handler: ToolHandler


@dataclass
class RegisteredResource:
    resource: types.Resource
    reader: ResourceReader


@dataclass
class _RequestState:
    initialized: bool = False
    client_info: types.Implementation | None = None
    protocol_version: str | None = None


def negotiate_protocol_version(requested: str | None) -> str:
    """Echo the client's version when supported, otherwise answer with the latest one."""
    if requested in types.SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return types.LATEST_PROTOCOL_VERSION


class Server:
    def __init__(self, name: str, version: str, instructions: str | None = None):
        self.name = name
        self.version = version
        self.instructions = instructions
        self._tools: dict[str, RegisteredTool] = {}
        self._resources: dict[str, RegisteredResource] = {}
        self._transport: StreamableHTTPServerTransport | None = None
        self._closed = False
        self._state = _RequestState()
        self._handlers: dict[str, Callable[[dict[str, Any] | None], Awaitable[Any]]] = {
            "initialize": self._handle_initialize,
            "ping": self._handle_ping,
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
            "resources/list": self._handle_list_resources,
            "resources/read": self._handle_read_resource,
        }
        logger.debug("Initializing server %r", name)

    @property
    def server_info(self) -> types.Implementation:
        return types.Implementation(name=self.name, version=self.version)

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def tools(self) -> list[types.Tool]:
        return [registered.tool for registered in self._tools.values()]

    @property
    def resources(self) -> list[types.Resource]:
        return [registered.resource for registered in self._resources.values()]

    def register_tool(
        self,
        name: str,
        handler: ToolHandler,
        *,
        title: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> types.Tool:
        """Register (or replace) the tool called ``name``."""
        if name in self._tools:
            logger.warning("Tool already registered, replacing: %s", name)
        tool = types.Tool(
            name=name,
            title=title,
            description=description,
            meta=meta,
            **({"input_schema": input_schema} if input_schema is not None else {}),
        )
        self._tools[name] = RegisteredTool(tool=tool, handler=handler)
        return tool

    def register_resource(
        self,
        name: str,
        uri: str,
        reader: ResourceReader,
        *,
        title: str | None = None,
        description: str | None = None,
        mime_type: str | None = None,
    ) -> types.Resource:
        """Register (or replace) the resource served at ``uri``."""
        if uri in self._resources:
            logger.warning("Resource already registered, replacing: %s", uri)
        resource = types.Resource(uri=uri, name=name, title=title, description=description, mime_type=mime_type)
        self._resources[uri] = RegisteredResource(resource=resource, reader=reader)
        return resource

    def get_capabilities(self) -> types.ServerCapabilities:
        return types.ServerCapabilities(
            tools={"listChanged": False} if self._tools else None,
            resources={"listChanged": False} if self._resources else None,
        )

    def connect(self, transport: StreamableHTTPServerTransport) -> None:
        """Attach this service to ``transport``; a service serves exactly one transport."""
        if self._closed:
            raise RuntimeError("Server has been closed")
        if self._transport is not None:
            raise RuntimeError("Server is already connected to a transport")
        transport.bind(self.handle_message)
        self._transport = transport

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        logger.debug("Server %r closed", self.name)

    async def handle_message(self, message: types.JSONRPCMessage) -> types.JSONRPCResponse | None:
        """Answer one JSON-RPC message; notifications and responses produce no reply."""
        if isinstance(message, types.JSONRPCNotification):
            await self._handle_notification(message)
            return None
        if not isinstance(message, types.JSONRPCRequest):
            logger.debug("Ignoring unexpected response message: %s", message)
            return None

        handler = self._handlers.get(message.method)
        if handler is None:
            return _error_response(message.id, types.METHOD_NOT_FOUND, f"Method not found: {message.method}")

        try:
            result = await handler(message.params)
        except McpError as err:
            return types.JSONRPCErrorResponse(id=message.id, error=err.error)
        except ValidationError as err:
            return _error_response(message.id, types.INVALID_PARAMS, f"Invalid params for {message.method}: {err}")
        except Exception as err:
            logger.exception("Error handling %s", message.method)
            return _error_response(message.id, types.INTERNAL_ERROR, str(err))

        return types.JSONRPCResultResponse(id=message.id, result=result.dump() if result is not None else {})

    async def _handle_notification(self, notification: types.JSONRPCNotification) -> None:
        if notification.method == "notifications/initialized":
            self._state.initialized = True
            logger.debug("Client acknowledged initialization")
        else:
            logger.debug("Ignoring notification %s", notification.method)

    async def _handle_initialize(self, params: dict[str, Any] | None) -> types.InitializeResult:
        request = types.InitializeRequestParams.model_validate(params or {})
        self._state.client_info = request.client_info
        self._state.protocol_version = negotiate_protocol_version(request.protocol_version)
        return types.InitializeResult(
            protocol_version=self._state.protocol_version,
            capabilities=self.get_capabilities(),
            server_info=self.server_info,
            instructions=self.instructions,
        )

    async def _handle_ping(self, params: dict[str, Any] | None) -> None:
        return None

    async def _handle_list_tools(self, params: dict[str, Any] | None) -> types.ListToolsResult:
        return types.ListToolsResult(tools=self.tools)

    async def _handle_call_tool(self, params: dict[str, Any] | None) -> types.CallToolResult:
        request = types.CallToolRequestParams.model_validate(params or {})
        registered = self._tools.get(request.name)
        if registered is None:
            raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"Unknown tool: {request.name}"))

        try:
            result = await registered.handler(request.arguments or {})
        except Exception as err:
            logger.exception("Tool %s failed", request.name)
            return types.CallToolResult(content=[types.TextContent(text=str(err))], is_error=True)
        return _convert_tool_result(result)

    async def _handle_list_resources(self, params: dict[str, Any] | None) -> types.ListResourcesResult:
        return types.ListResourcesResult(resources=self.resources)

    async def _handle_read_resource(self, params: dict[str, Any] | None) -> types.ReadResourceResult:
        request = types.ReadResourceRequestParams.model_validate(params or {})
        registered = self._resources.get(request.uri)
        if registered is None:
            raise ResourceError(f"Resource not found: {request.uri}", data={"uri": request.uri})

        content = registered.reader(request.uri)
        if inspect.isawaitable(content):
            content = await content
        return _convert_resource_content(registered.resource, content)


def _error_response(request_id: types.RequestId, code: int, message: str) -> types.JSONRPCErrorResponse:
    return types.JSONRPCErrorResponse(id=request_id, error=types.ErrorData(code=code, message=message))


def _convert_tool_result(result: ToolResult) -> types.CallToolResult:
    if isinstance(result, types.CallToolResult):
        return result
    if isinstance(result, str):
        return types.CallToolResult(content=[types.TextContent(text=result)])
    return types.CallToolResult.model_validate(result)


def _convert_resource_content(resource: types.Resource, content: ResourceContent) -> types.ReadResourceResult:
    if isinstance(content, types.ReadResourceResult):
        return content
    if isinstance(content, bytes):
        return types.ReadResourceResult(
            contents=[
                types.BlobResourceContents(
                    uri=resource.uri,
                    mime_type=resource.mime_type or "application/octet-stream",
                    blob=base64.b64encode(content).decode(),
                )
            ]
        )
    return types.ReadResourceResult(
        contents=[types.TextResourceContents(uri=resource.uri, mime_type=resource.mime_type or "text/plain", text=content)]
    )
