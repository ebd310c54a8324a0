"""Built-in JSON-RPC procedures.

- ``server``: info, capabilities, log, ping
- ``resource``: list, get, schema
- ``tool``: list, execute, schema
- ``prompt``: list, get

``create_default_table`` registers them according to the capability
toggles, then applies the declarations of the configured JSON file.
"""

from __future__ import annotations

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.config import RelaySettings, apply_config, load_config_file
from mcp_relay.events import EventDispatcher
from mcp_relay.procedures.prompt import PromptProcedure
from mcp_relay.procedures.resource import ResourceProcedure
from mcp_relay.procedures.server import ServerProcedure
from mcp_relay.procedures.tool import ToolProcedure
from mcp_relay.transport.procedures import ProcedureTable

__all__ = [
    "PromptProcedure",
    "ResourceProcedure",
    "ServerProcedure",
    "ToolProcedure",
    "create_default_table",
]


def create_default_table(
    settings: RelaySettings | None = None,
    catalog: CapabilityCatalog | None = None,
    events: EventDispatcher | None = None,
) -> ProcedureTable:
    """Build the procedure table served by a relay application.

    Args:
        settings: Relay settings (defaults when None)
        catalog: Catalog backing the capability procedures (empty when None)
        events: Dispatcher receiving capability events

    Raises:
        ConfigError: If the configured declarations file is invalid
    """
    settings = settings or RelaySettings()
    catalog = catalog if catalog is not None else CapabilityCatalog()
    table = ProcedureTable()

    table.register("server", ServerProcedure(settings, catalog, events))
    if settings.capabilities.resources:
        table.register("resource", ResourceProcedure(catalog, events))
    if settings.capabilities.tools:
        table.register("tool", ToolProcedure(catalog, events))
    if settings.capabilities.prompts:
        table.register("prompt", PromptProcedure(catalog, events))

    if settings.config_file is not None:
        config = load_config_file(settings.config_file)
        apply_config(config, catalog, table, base_dir=settings.config_file.parent)
    return table
