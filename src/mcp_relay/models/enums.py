"""Enumerations for MCP Relay."""

from enum import Enum


class ConnectionState(str, Enum):
    """Lifecycle states of a streaming connection.

    A connection starts ``pending``, becomes ``active`` once its stream has
    written the handshake frame, and ends ``closed``.

    Example:
        >>> ConnectionState.CLOSED.is_terminal()
        True
        >>> ConnectionState.PENDING.can_transition_to(ConnectionState.ACTIVE)
        True
    """

    PENDING = "pending"
    ACTIVE = "active"
    CLOSED = "closed"

    def is_terminal(self) -> bool:
        return self is ConnectionState.CLOSED

    def can_transition_to(self, target: "ConnectionState") -> bool:
        return target in VALID_TRANSITIONS[self]


VALID_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.PENDING: frozenset({ConnectionState.ACTIVE, ConnectionState.CLOSED}),
    ConnectionState.ACTIVE: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}
