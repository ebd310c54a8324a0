"""The ``prompt`` procedure: list and render prompts."""

from __future__ import annotations

from typing import Any

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.capabilities.prompts import Prompt, render_template
from mcp_relay.events import EventDispatcher
from mcp_relay.observability import get_logger
from mcp_relay.procedures.base import BaseProcedure, call_handler
from mcp_relay.transport.procedures import rpc_method

logger = get_logger(__name__)


class PromptProcedure(BaseProcedure):
    def __init__(self, catalog: CapabilityCatalog, events: EventDispatcher | None = None) -> None:
        super().__init__(events)
        self.catalog = catalog

    @rpc_method(name="list")
    def list_prompts(self) -> dict[str, Any]:
        return {
            name: {"name": name, "metadata": entry.metadata}
            for name, entry in self.catalog.prompts().items()
        }

    @rpc_method(name="get")
    async def get_prompt(self, name: str, variables: dict[str, Any] | None = None) -> str:
        """Render a prompt with ``variables``; unknown placeholders stay as-is.

        Raises:
            PromptNotFoundError: If no prompt is registered as ``name``
        """
        entry = self.catalog.get_prompt(name)
        values = dict(variables or {})
        if isinstance(entry.handler, Prompt):
            return entry.handler.process(values)
        if entry.handler is not None:
            return str(await call_handler(entry.handler, entry.content or "", values))
        if entry.content is None:
            raise ValueError(f"Invalid prompt content for '{name}'")
        return render_template(entry.content, values)
