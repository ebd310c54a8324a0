"""The ``tool`` procedure: list, execute and describe tools.

Params are validated against the tool's JSON Schema with jsonschema before
the tool runs; validation failures surface as JSON-RPC -32602.
"""

from __future__ import annotations

import time
from typing import Any

import jsonschema

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.capabilities.tools import Tool
from mcp_relay.errors import InvalidToolParametersError
from mcp_relay.events import EventDispatcher
from mcp_relay.observability import get_logger, is_debug_mode, sanitize_for_logging
from mcp_relay.procedures.base import BaseProcedure, call_handler
from mcp_relay.transport.procedures import rpc_method

logger = get_logger(__name__)


def validate_tool_params(tool: str, params: dict[str, Any], schema: dict[str, Any] | None) -> None:
    """Check ``params`` against ``schema``.

    Raises:
        InvalidToolParametersError: With every validation message
    """
    if not schema:
        return
    validator_cls = jsonschema.validators.validator_for(schema)
    validator = validator_cls(schema)
    errors = sorted(validator.iter_errors(params), key=lambda err: list(err.path))
    if errors:
        raise InvalidToolParametersError(tool, [_describe(err) for err in errors])


def _describe(error: jsonschema.ValidationError) -> str:
    location = ".".join(str(part) for part in error.path)
    return f"{location}: {error.message}" if location else error.message


class ToolProcedure(BaseProcedure):
    def __init__(self, catalog: CapabilityCatalog, events: EventDispatcher | None = None) -> None:
        super().__init__(events)
        self.catalog = catalog

    @rpc_method(name="list")
    def list_tools(self) -> dict[str, Any]:
        return {
            name: {"name": name, "schema": entry.effective_schema, "metadata": entry.metadata}
            for name, entry in self.catalog.tools().items()
        }

    @rpc_method(name="execute")
    async def execute(self, name: str, params: dict[str, Any] | None = None) -> Any:
        """Validate ``params`` and run the tool.

        Raises:
            ToolNotFoundError: If no tool is registered as ``name``
            InvalidToolParametersError: If params fail the tool's schema
        """
        entry = self.catalog.get_tool(name)
        arguments = dict(params or {})
        validate_tool_params(name, arguments, entry.effective_schema)

        handler = entry.handler
        func = handler.execute if isinstance(handler, Tool) else handler
        start_time = time.perf_counter()
        try:
            result = await call_handler(func, arguments)
        except Exception as e:
            logged = arguments if is_debug_mode() else sanitize_for_logging(arguments)
            logger.error("mcp.tool.error", tool=name, params=logged, error=str(e))
            raise
        logger.debug(
            "mcp.tool.completed",
            tool=name,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        self.emit("mcp.tool.executed", name=name)
        return result

    @rpc_method(name="schema")
    def get_schema(self, name: str) -> dict[str, Any] | None:
        return self.catalog.get_tool(name).effective_schema
