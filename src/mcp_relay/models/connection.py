"""Connection model tracked by the connection registry."""

from datetime import datetime

from pydantic import Field

from mcp_relay.models.base import RelayBaseModel
from mcp_relay.models.enums import ConnectionState


class Connection(RelayBaseModel):
    """Immutable snapshot of one streaming connection.

    The registry replaces its stored snapshot on every change, so a value
    returned by ``ConnectionRegistry.get`` never mutates under the caller.

    Attributes:
        id: 128-bit random identifier (32 hex characters)
        created_at: When the connection was created (UTC)
        last_active: Last inbound or outbound activity (UTC)
        state: Current lifecycle state
        heartbeat_interval: Seconds between heartbeat ticks on the stream
    """

    id: str = Field(min_length=1, description="Opaque connection identifier")
    created_at: datetime = Field(description="Creation time (UTC)")
    last_active: datetime = Field(description="Last activity time (UTC)")
    state: ConnectionState = Field(default=ConnectionState.PENDING)
    heartbeat_interval: float = Field(gt=0, description="Heartbeat interval in seconds")

    def idle_seconds(self, now: datetime) -> float:
        """Seconds elapsed since the last activity."""
        return (now - self.last_active).total_seconds()

    def is_expired(self, ttl: float, now: datetime) -> bool:
        """Return True if the connection has been idle for at least ``ttl`` seconds."""
        return self.idle_seconds(now) >= ttl
