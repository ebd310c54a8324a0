"""MCP Relay Error Taxonomy.

This module defines the error hierarchy for the relay, providing structured
error handling with namespaced error codes and context information.

JSON-RPC failures carry an ``rpc_code`` so the router can fold them into
error responses; connection failures are surfaced by the HTTP layer.
"""

from __future__ import annotations

from typing import Any, ClassVar

# JSON-RPC 2.0 error codes referenced by the exception classes
PARSE_ERROR_CODE = -32700
INVALID_REQUEST_CODE = -32600
METHOD_NOT_FOUND_CODE = -32601
INVALID_PARAMS_CODE = -32602
SERVER_ERROR_CODE = -32000


class RelayError(Exception):
    """Base exception for all MCP Relay errors.

    This is the root exception class that all relay-specific errors
    inherit from. It provides a standardized way to handle errors with
    error codes and additional context.

    Attributes:
        code: Error code following the mcp:area/reason pattern
        message: Human-readable error message
        details: Optional additional error context
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, details}`` dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class JsonRpcFailure(RelayError):
    """Base for errors that map onto a JSON-RPC error object.

    Subclasses set ``rpc_code`` to the JSON-RPC error code that the router
    reports to the client.
    """

    rpc_code: ClassVar[int] = SERVER_ERROR_CODE


class ParseError(JsonRpcFailure):
    """Raised when a request body is not valid JSON."""

    rpc_code = PARSE_ERROR_CODE

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:rpc/parse_error",
            message=f"Parse error: {reason}",
            details=details or {},
        )
        self.reason = reason


class InvalidRequestError(JsonRpcFailure):
    """Raised when a JSON-RPC envelope is structurally invalid.

    Covers a missing or wrong ``jsonrpc`` version, a missing or non-string
    ``method``, malformed ``params`` or ``id``, an empty batch, and method
    names that do not split into ``procedure.method``.
    """

    rpc_code = INVALID_REQUEST_CODE

    def __init__(
        self,
        reason: str,
        request_id: str | int | float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code="mcp:rpc/invalid_request",
            message=f"Invalid request: {reason}",
            details=details or {},
        )
        self.reason = reason
        self.request_id = request_id


class MethodNotFoundError(JsonRpcFailure):
    """Raised when a procedure or one of its methods is not registered.

    Attributes:
        method: The full ``procedure.method`` string that failed to resolve
    """

    rpc_code = METHOD_NOT_FOUND_CODE

    def __init__(self, method: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:rpc/method_not_found",
            message=f"Method not found: {method}",
            details={"method": method, **(details or {})},
        )
        self.method = method


class InvalidParamsError(JsonRpcFailure):
    """Raised when params cannot be bound to the handler's signature."""

    rpc_code = INVALID_PARAMS_CODE

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:rpc/invalid_params",
            message=f"Invalid params: {reason}",
            details=details or {},
        )
        self.reason = reason


class HandlerError(JsonRpcFailure):
    """Wraps an exception raised inside a registered handler.

    Attributes:
        method: The ``procedure.method`` that was invoked
        original: The exception raised by the handler
    """

    rpc_code = SERVER_ERROR_CODE

    def __init__(self, method: str, original: BaseException) -> None:
        details: dict[str, Any] = {"method": method, "type": type(original).__name__}
        if isinstance(original, RelayError):
            details["error"] = original.to_dict()
        super().__init__(
            code="mcp:rpc/handler_error",
            message=str(original) or type(original).__name__,
            details=details,
        )
        self.method = method
        self.original = original


class ConnectionNotFoundError(RelayError):
    """Raised when a connection id is unknown or already closed.

    Attributes:
        connection_id: The connection id that could not be resolved
    """

    def __init__(self, connection_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="mcp:connection/not_found",
            message=f"Connection not found: {connection_id}",
            details={"connection_id": connection_id, **(details or {})},
        )
        self.connection_id = connection_id


class ConnectionExpiredError(RelayError):
    """Raised when a connection exists but has been idle beyond its TTL.

    Attributes:
        connection_id: The expired connection id
        idle_seconds: Seconds since the connection's last activity
    """

    def __init__(
        self, connection_id: str, idle_seconds: float, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="mcp:connection/expired",
            message=f"Connection expired: {connection_id} (idle {idle_seconds:.1f}s)",
            details={
                "connection_id": connection_id,
                "idle_seconds": round(idle_seconds, 3),
                **(details or {}),
            },
        )
        self.connection_id = connection_id
        self.idle_seconds = idle_seconds


class InvalidTransitionError(RelayError):
    """Raised when a connection state change is not allowed.

    Attributes:
        from_state: The current connection state
        to_state: The attempted target state
    """

    def __init__(
        self, from_state: str, to_state: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="mcp:connection/invalid_state",
            message=f"Invalid transition from '{from_state}' to '{to_state}'",
            details={"from_state": from_state, "to_state": to_state, **(details or {})},
        )
        self.from_state = from_state
        self.to_state = to_state


class SessionConflictError(RelayError):
    """Raised when a second live stream is attached to one connection id."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(
            code="mcp:connection/session_active",
            message=f"Connection already has an active stream: {connection_id}",
            details={"connection_id": connection_id},
        )
        self.connection_id = connection_id


class TransportError(RelayError):
    """Raised when a frame cannot be written to a disconnected peer."""

    def __init__(
        self, connection_id: str, reason: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="mcp:transport/write_failed",
            message=f"Write failed for connection {connection_id}: {reason}",
            details={"connection_id": connection_id, **(details or {})},
        )
        self.connection_id = connection_id
        self.reason = reason


class CapabilityNotFoundError(RelayError):
    """Base for lookups of unregistered resources, tools and prompts.

    Attributes:
        kind: Capability kind ("resource", "tool" or "prompt")
        name: The requested capability name
    """

    kind: ClassVar[str] = "capability"

    def __init__(self, name: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code=f"mcp:{self.kind}/not_found",
            message=f"{self.kind.capitalize()} '{name}' not found",
            details={"name": name, **(details or {})},
        )
        self.name = name


class ResourceNotFoundError(CapabilityNotFoundError):
    """Raised when ``resource.get`` or ``resource.schema`` names no resource."""

    kind = "resource"


class ToolNotFoundError(CapabilityNotFoundError):
    """Raised when ``tool.execute`` or ``tool.schema`` names no tool."""

    kind = "tool"


class PromptNotFoundError(CapabilityNotFoundError):
    """Raised when ``prompt.get`` names no prompt."""

    kind = "prompt"


class InvalidToolParametersError(InvalidParamsError):
    """Raised when tool parameters fail the tool's JSON Schema.

    Attributes:
        tool: The tool name
        errors: Validation messages
    """

    def __init__(self, tool: str, errors: list[str]) -> None:
        super().__init__(
            reason=f"invalid parameters for tool '{tool}'",
            details={"tool": tool, "errors": errors},
        )
        self.code = "mcp:tool/invalid_parameters"
        self.tool = tool
        self.errors = errors
