"""The ``server`` procedure: identity, capabilities, client logging, ping."""

from __future__ import annotations

import time
from typing import Any

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.config import RelaySettings
from mcp_relay.events import EventDispatcher
from mcp_relay.observability import get_logger
from mcp_relay.procedures.base import BaseProcedure
from mcp_relay.transport.procedures import rpc_method

logger = get_logger(__name__)

# Client-facing levels mapped onto the levels the logger supports
CLIENT_LOG_LEVELS: dict[str, str] = {
    "debug": "debug",
    "info": "info",
    "notice": "info",
    "warning": "warning",
    "error": "error",
    "critical": "critical",
    "alert": "critical",
    "emergency": "critical",
}


class ServerProcedure(BaseProcedure):
    """Serves ``server.info``, ``server.capabilities``, ``server.log``, ``server.ping``."""

    def __init__(
        self,
        settings: RelaySettings,
        catalog: CapabilityCatalog,
        events: EventDispatcher | None = None,
    ) -> None:
        super().__init__(events)
        self.settings = settings
        self.catalog = catalog

    @rpc_method
    def info(self) -> dict[str, Any]:
        return {
            "name": self.settings.server_name,
            "version": self.settings.server_version,
            "resources": sorted(self.catalog.resources()),
            "tools": sorted(self.catalog.tools()),
            "prompts": sorted(self.catalog.prompts()),
        }

    @rpc_method
    def capabilities(self) -> dict[str, Any]:
        return self.settings.capabilities.as_dict()

    @rpc_method
    def log(self, level: str, message: str, context: dict[str, Any] | None = None) -> bool:
        """Write a client message to the server log; unknown levels log as info."""
        client_level = level.lower() if isinstance(level, str) else "info"
        method = CLIENT_LOG_LEVELS.get(client_level, "info")
        getattr(logger, method)(
            "mcp.client.log",
            client_level=client_level,
            client_message=message,
            context=context or {},
        )
        return True

    @rpc_method
    def ping(self) -> dict[str, Any]:
        return {"status": "ok", "timestamp": int(time.time())}
