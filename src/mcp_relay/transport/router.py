"""JSON-RPC 2.0 router.

Turns raw request bodies into replies: parses and validates envelopes
(single or batch), resolves ``procedure.method`` against the ProcedureTable,
binds params to the callable's signature, runs it, and folds the result or
exception into a reply. No handler exception escapes the router.

Notifications (requests without ``id``) execute but produce no reply, also
inside batches.

Example:
    >>> router = JsonRpcRouter(table)
    >>> reply = await router.handle('{"jsonrpc":"2.0","method":"server.ping","id":1}')
    >>> reply.id
    1
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import json
import time
from concurrent.futures import Executor
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from mcp_relay.errors import (
    HandlerError,
    InvalidParamsError,
    InvalidRequestError,
    JsonRpcFailure,
    MethodNotFoundError,
    ParseError,
    RelayError,
)
from mcp_relay.events import EventDispatcher
from mcp_relay.observability import get_logger, get_metrics, is_debug_mode, sanitize_for_logging
from mcp_relay.transport.jsonrpc import (
    JSONRPC_VERSION,
    JsonRpcError,
    JsonRpcErrorResponse,
    JsonRpcReply,
    JsonRpcRequest,
    JsonRpcResponse,
)
from mcp_relay.transport.procedures import ProcedureTable, RpcCallable

logger = get_logger(__name__)

# Label used for metrics when the method is not registered
_UNKNOWN_METHOD_LABEL = "other"


def split_method(method: str) -> tuple[str, str]:
    """Split ``procedure.method`` on the first dot.

    Raises:
        InvalidRequestError: If the result is not two non-empty parts

    Example:
        >>> split_method("tool.execute")
        ('tool', 'execute')
    """
    procedure, sep, name = method.partition(".")
    if not sep or not procedure or not name or "." in name:
        raise InvalidRequestError(
            f"method must have the form 'procedure.method', got {method!r}",
            details={"method": method},
        )
    return procedure, name


def _recover_id(data: Any) -> str | int | float | None:
    if not isinstance(data, dict):
        return None
    request_id = data.get("id")
    if isinstance(request_id, bool):
        return None
    if isinstance(request_id, (str, int, float)):
        return request_id
    return None


def build_error_reply(
    failure: JsonRpcFailure, request_id: str | int | float | None
) -> JsonRpcErrorResponse:
    """Build the error reply for a JSON-RPC failure."""
    data = failure.details or None
    return JsonRpcErrorResponse(
        error=JsonRpcError(code=failure.rpc_code, message=failure.message, data=data),
        id=request_id,
    )


class JsonRpcRouter:
    """Parse, validate and dispatch JSON-RPC requests.

    Sync handler methods run in ``executor`` (the loop default when None) so
    slow handlers never block the event loop; coroutine methods are awaited.

    Attributes:
        table: Procedures served by this router
        events: Optional dispatcher receiving request/response hooks
    """

    def __init__(
        self,
        table: ProcedureTable,
        events: EventDispatcher | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.table = table
        self.events = events
        self._executor = executor

    def parse(self, raw: str | bytes) -> JsonRpcRequest | list[JsonRpcRequest]:
        """Parse a body into one request or a batch.

        Raises:
            ParseError: If ``raw`` is not valid JSON
            InvalidRequestError: If the envelope, or any batch member, is invalid
        """
        data = self._load(raw)
        if isinstance(data, list):
            if not data:
                raise InvalidRequestError("empty batch")
            return [self.validate_request(item) for item in data]
        return self.validate_request(data)

    def validate_request(self, data: Any) -> JsonRpcRequest:
        """Validate one decoded envelope.

        Raises:
            InvalidRequestError: With the recoverable request id, if any
        """
        request_id = _recover_id(data)
        if not isinstance(data, dict):
            raise InvalidRequestError(
                "request must be a JSON object",
                details={"received_type": type(data).__name__},
            )
        if data.get("jsonrpc") != JSONRPC_VERSION:
            raise InvalidRequestError(
                "'jsonrpc' must be exactly \"2.0\"", request_id=request_id
            )
        try:
            return JsonRpcRequest.model_validate(data)
        except ValidationError as e:
            raise InvalidRequestError(
                "malformed envelope",
                request_id=request_id,
                details={
                    "errors": [
                        {"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()
                    ]
                },
            ) from e

    async def dispatch(self, request: JsonRpcRequest) -> JsonRpcReply:
        """Dispatch one request and return its reply.

        A reply is produced for notifications too (with ``id`` null); callers
        that honour notification semantics discard it.
        """
        start_time = time.perf_counter()
        metrics = get_metrics()
        self._emit("mcp.request.received", method=request.method, request_id=request.id)

        try:
            procedure, name = split_method(request.method)
            func = self.table.resolve_method(procedure, name)
            if func is None:
                raise MethodNotFoundError(request.method)
            result = await self._invoke(request.method, func, request.params)
            reply: JsonRpcReply = JsonRpcResponse(result=result, id=request.id)
            method_label = request.method
        except JsonRpcFailure as failure:
            reply = build_error_reply(failure, request.id)
            method_label = (
                request.method
                if not isinstance(failure, (MethodNotFoundError, InvalidRequestError))
                else _UNKNOWN_METHOD_LABEL
            )

        duration = time.perf_counter() - start_time
        is_error = isinstance(reply, JsonRpcErrorResponse)
        metrics.increment_counter(
            "mcp_rpc_requests_total",
            {"method": method_label, "status": "error" if is_error else "success"},
        )
        if isinstance(reply, JsonRpcErrorResponse):
            metrics.increment_counter(
                "mcp_rpc_errors_total", {"code": str(reply.error.code)}
            )
        metrics.observe_histogram("mcp_rpc_duration_seconds", duration, {"method": method_label})
        logger.debug(
            "mcp.rpc.completed",
            method=request.method,
            request_id=request.id,
            is_error=is_error,
            duration_ms=round(duration * 1000, 2),
        )
        self._emit(
            "mcp.response.sent", method=request.method, request_id=request.id, is_error=is_error
        )
        return reply

    async def dispatch_batch(self, requests: list[JsonRpcRequest]) -> list[JsonRpcReply]:
        """Dispatch each request in order; notifications contribute no reply."""
        replies: list[JsonRpcReply] = []
        for request in requests:
            reply = await self.dispatch(request)
            if not request.is_notification:
                replies.append(reply)
        return replies

    async def handle(self, raw: str | bytes) -> JsonRpcReply | list[JsonRpcReply] | None:
        """Full pipeline for one body.

        Invalid members of a batch become individual -32600 replies while
        the valid ones are dispatched. Returns None when nothing needs a
        reply (a notification, or a batch made only of notifications).
        """
        try:
            data = self._load(raw)
        except ParseError as failure:
            get_metrics().increment_counter("mcp_rpc_parse_errors_total")
            logger.warning("mcp.rpc.parse_error", error=failure.reason)
            return build_error_reply(failure, None)

        if isinstance(data, list):
            if not data:
                return build_error_reply(InvalidRequestError("empty batch"), None)
            replies: list[JsonRpcReply] = []
            for item in data:
                reply = await self._handle_one(item)
                if reply is not None:
                    replies.append(reply)
            return replies or None

        return await self._handle_one(data)

    async def _handle_one(self, data: Any) -> JsonRpcReply | None:
        try:
            request = self.validate_request(data)
        except InvalidRequestError as failure:
            logger.warning("mcp.rpc.invalid_request", reason=failure.reason)
            return build_error_reply(failure, failure.request_id)
        reply = await self.dispatch(request)
        return None if request.is_notification else reply

    def _load(self, raw: str | bytes) -> Any:
        try:
            return json.loads(raw)
        except (ValueError, TypeError) as e:
            raise ParseError(str(e)) from e

    async def _invoke(
        self, method: str, func: RpcCallable, params: dict[str, Any] | list[Any] | None
    ) -> Any:
        args: list[Any] = list(params) if isinstance(params, list) else []
        kwargs: dict[str, Any] = dict(params) if isinstance(params, dict) else {}
        try:
            inspect.signature(func).bind(*args, **kwargs)
        except TypeError as e:
            raise InvalidParamsError(str(e), details={"method": method}) from e
        except ValueError:
            # Builtins without an inspectable signature are called as-is
            pass

        try:
            if inspect.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    self._executor, functools.partial(func, *args, **kwargs)
                )
                if inspect.isawaitable(result):
                    result = await result
            return jsonable_encoder(result)
        except JsonRpcFailure:
            raise
        except RelayError as e:
            logger.warning("mcp.rpc.handler_failed", method=method, code=e.code, error=e.message)
            raise HandlerError(method, e) from e
        except Exception as e:
            logged_params = params
            if isinstance(params, dict) and not is_debug_mode():
                logged_params = sanitize_for_logging(params)
            logger.exception(
                "mcp.rpc.handler_error", method=method, params=logged_params, error=str(e)
            )
            raise HandlerError(method, e) from e

    def _emit(self, event: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.dispatch(event, **payload)
