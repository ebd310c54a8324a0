"""MCP Relay Models.

Pydantic models shared by the transport layer.
"""

from mcp_relay.models.base import RelayBaseModel
from mcp_relay.models.connection import Connection
from mcp_relay.models.enums import VALID_TRANSITIONS, ConnectionState

__all__ = [
    "Connection",
    "ConnectionState",
    "RelayBaseModel",
    "VALID_TRANSITIONS",
]
