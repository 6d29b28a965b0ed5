"""Wire models for the JSON-RPC envelope and the MCP payloads the bridge speaks."""

from typing import Annotated, Any, Final, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION: Final[str] = "2.0"

LATEST_PROTOCOL_VERSION: Final[str] = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = ("2024-11-05", "2025-03-26", "2025-06-18")

PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603
RESOURCE_NOT_FOUND: Final[int] = -32002

RequestId = Annotated[int, Field(strict=True)] | str


class MCPModel(BaseModel):
    """Base class for all MCP domain types. Allows extra fields for forward compatibility."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class JSONRPCBase(MCPModel):
    """Base class for all JSON-RPC messages."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData

    def dump(self) -> dict[str, Any]:
        # a null id is meaningful here (parse errors), keep it on the wire
        payload = super().dump()
        payload.setdefault("id", None)
        return payload


JSONRPCResponse: TypeAlias = JSONRPCResultResponse | JSONRPCErrorResponse
JSONRPCMessage: TypeAlias = JSONRPCRequest | JSONRPCNotification | JSONRPCResponse


def parse_message(obj: Any) -> JSONRPCMessage:
    """Classify one decoded JSON value as a JSON-RPC message.

    Raises:
        ValidationError: if the value is not a JSON-RPC 2.0 message.
    """
    if not isinstance(obj, dict):
        # pydantic reports the error for non-object values
        return JSONRPCRequest.model_validate(obj)
    if "method" in obj:
        if "id" in obj:
            return JSONRPCRequest.model_validate(obj)
        return JSONRPCNotification.model_validate(obj)
    if "error" in obj:
        return JSONRPCErrorResponse.model_validate(obj)
    return JSONRPCResultResponse.model_validate(obj)


class Implementation(MCPModel):
    """Describes the name and version of an MCP implementation."""

    name: str
    version: str
    title: str | None = None


class ClientCapabilities(MCPModel):
    pass


class ServerCapabilities(MCPModel):
    tools: dict[str, Any] | None = None
    resources: dict[str, Any] | None = None


class InitializeRequestParams(MCPModel):
    """Parameters for the initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    client_info: Annotated[Implementation | None, Field(alias="clientInfo")] = None


class InitializeResult(MCPModel):
    """Server's response to an initialize request."""

    protocol_version: Annotated[str, Field(alias="protocolVersion")]
    capabilities: ServerCapabilities
    server_info: Annotated[Implementation, Field(alias="serverInfo")]
    instructions: str | None = None


class Tool(MCPModel):
    """Definition of a tool the server provides."""

    name: str
    input_schema: Annotated[dict[str, Any], Field(alias="inputSchema")] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    title: str | None = None
    description: str | None = None
    meta: Annotated[dict[str, Any] | None, Field(alias="_meta")] = None


class ListToolsResult(MCPModel):
    tools: list[Tool]
    next_cursor: Annotated[str | None, Field(alias="nextCursor")] = None


class CallToolRequestParams(MCPModel):
    name: str
    arguments: dict[str, Any] | None = None


class TextContent(MCPModel):
    """Text provided to or from an LLM."""

    type: Literal["text"] = "text"
    text: str


class CallToolResult(MCPModel):
    """The server's response to a tool call."""

    content: list[TextContent] = Field(default_factory=list)
    structured_content: Annotated[dict[str, Any] | None, Field(alias="structuredContent")] = None
    is_error: Annotated[bool, Field(alias="isError")] = False


class Resource(MCPModel):
    """A known resource that the server is capable of reading."""

    uri: str
    name: str
    title: str | None = None
    description: str | None = None
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None


class ListResourcesResult(MCPModel):
    resources: list[Resource]
    next_cursor: Annotated[str | None, Field(alias="nextCursor")] = None


class ReadResourceRequestParams(MCPModel):
    uri: str


class TextResourceContents(MCPModel):
    """Text contents of a resource."""

    uri: str
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None
    text: str


class BlobResourceContents(MCPModel):
    """Binary contents of a resource (base64 encoded)."""

    uri: str
    mime_type: Annotated[str | None, Field(alias="mimeType")] = None
    blob: str


class ReadResourceResult(MCPModel):
    contents: list[TextResourceContents | BlobResourceContents]
