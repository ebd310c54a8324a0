"""The ``resource`` procedure: list, read and describe resources."""

from __future__ import annotations

from typing import Any

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.capabilities.resources import Resource
from mcp_relay.events import EventDispatcher
from mcp_relay.observability import get_logger
from mcp_relay.procedures.base import BaseProcedure, call_handler
from mcp_relay.transport.procedures import rpc_method

logger = get_logger(__name__)


class ResourceProcedure(BaseProcedure):
    def __init__(self, catalog: CapabilityCatalog, events: EventDispatcher | None = None) -> None:
        super().__init__(events)
        self.catalog = catalog

    @rpc_method(name="list")
    def list_resources(self) -> dict[str, Any]:
        return {
            name: {"name": name, "metadata": entry.metadata}
            for name, entry in self.catalog.resources().items()
        }

    @rpc_method(name="get")
    async def get_resource(self, name: str, params: dict[str, Any] | None = None) -> Any:
        """Read a resource; ``params`` override the registered options.

        Raises:
            ResourceNotFoundError: If no resource is registered as ``name``
        """
        entry = self.catalog.get_resource(name)
        merged = {**entry.options, **(params or {})}
        handler = entry.handler
        func = handler.get_data if isinstance(handler, Resource) else handler
        try:
            data = await call_handler(func, merged)
        except Exception as e:
            logger.error("mcp.resource.error", name=name, error=str(e))
            raise
        self.emit("mcp.resource.accessed", name=name)
        return data

    @rpc_method(name="schema")
    def get_schema(self, name: str) -> dict[str, Any] | None:
        return self.catalog.get_resource(name).schema
