"""JSON-RPC 2.0 models for the MCP relay.

This module implements the JSON-RPC 2.0 envelope
(https://www.jsonrpc.org/specification) used on both the relayed SSE path
and the direct ``/json-rpc`` endpoint.

Methods are addressed as ``"<procedure>.<method>"``, for example
``tool.execute`` or ``server.ping``.

Standard JSON-RPC Error Codes:
    -32700: Parse error (invalid JSON)
    -32600: Invalid request (malformed JSON-RPC)
    -32601: Method not found
    -32602: Invalid params
    -32000: Server error (exception raised by a handler)

Example:
    >>> request = JsonRpcRequest(method="server.ping", id=1)
    >>> reply = JsonRpcResponse(result={"status": "ok"}, id=request.id)
    >>> encode_reply(reply)
    '{"jsonrpc":"2.0","result":{"status":"ok"},"id":1}'
"""

import json
from typing import Any, Literal, Union

from pydantic import Field, StrictFloat, StrictInt, StrictStr

from mcp_relay.errors import (
    INVALID_PARAMS_CODE,
    INVALID_REQUEST_CODE,
    METHOD_NOT_FOUND_CODE,
    PARSE_ERROR_CODE,
    SERVER_ERROR_CODE,
)
from mcp_relay.models.base import RelayBaseModel

JSONRPC_VERSION = "2.0"

PARSE_ERROR = PARSE_ERROR_CODE
INVALID_REQUEST = INVALID_REQUEST_CODE
METHOD_NOT_FOUND = METHOD_NOT_FOUND_CODE
INVALID_PARAMS = INVALID_PARAMS_CODE
SERVER_ERROR = SERVER_ERROR_CODE

ERROR_MESSAGES: dict[int, str] = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    SERVER_ERROR: "Server error",
}

# Any JSON number is a valid id; bools are not
RequestId = Union[StrictStr, StrictInt, StrictFloat, None]


class JsonRpcError(RelayBaseModel):
    """JSON-RPC 2.0 error object.

    Attributes:
        code: Integer error code (standard or application-defined)
        message: Short error description
        data: Optional additional error information

    Example:
        >>> JsonRpcError.from_code(METHOD_NOT_FOUND).message
        'Method not found'
    """

    code: int = Field(description="Error code (negative integer)")
    message: str = Field(description="Short error description")
    data: Any = Field(default=None, description="Optional additional error information")

    @staticmethod
    def from_code(code: int, data: Any = None, message: str | None = None) -> "JsonRpcError":
        """Create an error from a standard code, optionally overriding the message."""
        return JsonRpcError(
            code=code,
            message=message or ERROR_MESSAGES.get(code, "Unknown error"),
            data=data,
        )


class JsonRpcRequest(RelayBaseModel):
    """JSON-RPC 2.0 request or notification.

    A request without an ``id`` (or with ``id: null``) is a notification:
    it is executed but produces no reply.

    Attributes:
        jsonrpc: Protocol version (always "2.0")
        method: ``procedure.method`` string
        params: Positional (array) or named (object) parameters
        id: Request identifier for correlation

    Example:
        >>> JsonRpcRequest(method="tool.list").is_notification
        True
    """

    jsonrpc: Literal["2.0"] = Field(
        default="2.0", description="JSON-RPC protocol version (always '2.0')"
    )
    method: StrictStr = Field(min_length=1, description="RPC method name")
    params: dict[str, Any] | list[Any] | None = Field(
        default=None, description="Request parameters"
    )
    id: RequestId = Field(default=None, description="Request identifier for correlation")

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcResponse(RelayBaseModel):
    """JSON-RPC 2.0 successful response."""

    jsonrpc: Literal["2.0"] = Field(default="2.0")
    result: Any = Field(description="Response data")
    id: RequestId = Field(description="Request identifier (matches request)")


class JsonRpcErrorResponse(RelayBaseModel):
    """JSON-RPC 2.0 error response.

    ``id`` is null only when it could not be recovered from the request.
    """

    jsonrpc: Literal["2.0"] = Field(default="2.0")
    error: JsonRpcError = Field(description="Error object")
    id: RequestId = Field(description="Request identifier (or null)")


JsonRpcReply = Union[JsonRpcResponse, JsonRpcErrorResponse]


def reply_to_dict(reply: JsonRpcReply) -> dict[str, Any]:
    """Convert a reply to its wire dict, omitting an empty ``error.data``."""
    payload = reply.model_dump(mode="json")
    error = payload.get("error")
    if isinstance(error, dict) and error.get("data") is None:
        error.pop("data", None)
    return payload


def encode_reply(reply: JsonRpcReply | list[JsonRpcReply]) -> str:
    """Serialize a reply or batch of replies to compact JSON text."""
    if isinstance(reply, list):
        body: Any = [reply_to_dict(item) for item in reply]
    else:
        body = reply_to_dict(reply)
    return json.dumps(body, separators=(",", ":"))


def decode_reply(raw: str | bytes) -> JsonRpcReply | list[JsonRpcReply]:
    """Parse reply JSON back into models (client side of the stream).

    Raises:
        ValueError: If ``raw`` is not JSON
        pydantic.ValidationError: If an entry is not a valid reply
    """
    data = json.loads(raw)
    if isinstance(data, list):
        return [_reply_from_dict(item) for item in data]
    return _reply_from_dict(data)


def _reply_from_dict(data: Any) -> JsonRpcReply:
    if isinstance(data, dict) and "error" in data:
        return JsonRpcErrorResponse.model_validate(data)
    return JsonRpcResponse.model_validate(data)
