"""Tests for the Connection model and its lifecycle states."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from mcp_relay.models import Connection, ConnectionState

NOW = datetime(2025, 1, 1, tzinfo=UTC)


def _connection(**overrides: object) -> Connection:
    fields: dict[str, object] = {
        "id": "a" * 32,
        "created_at": NOW,
        "last_active": NOW,
        "heartbeat_interval": 30.0,
    }
    fields.update(overrides)
    return Connection(**fields)  # type: ignore[arg-type]


class TestConnectionState:
    """Tests for ConnectionState transitions."""

    def test_pending_transitions(self) -> None:
        """Pending connections may activate or close."""
        assert ConnectionState.PENDING.can_transition_to(ConnectionState.ACTIVE)
        assert ConnectionState.PENDING.can_transition_to(ConnectionState.CLOSED)

    def test_active_only_closes(self) -> None:
        """Active connections can only close."""
        assert ConnectionState.ACTIVE.can_transition_to(ConnectionState.CLOSED)
        assert not ConnectionState.ACTIVE.can_transition_to(ConnectionState.PENDING)

    def test_closed_is_terminal(self) -> None:
        """Closed connections never transition again."""
        assert ConnectionState.CLOSED.is_terminal()
        assert not ConnectionState.ACTIVE.is_terminal()
        for state in ConnectionState:
            assert not ConnectionState.CLOSED.can_transition_to(state)


class TestConnection:
    """Tests for the Connection snapshot."""

    def test_defaults_to_pending(self) -> None:
        """New connections start pending."""
        assert _connection().state is ConnectionState.PENDING

    def test_is_frozen(self) -> None:
        """Snapshots cannot be mutated in place."""
        connection = _connection()

        with pytest.raises(ValidationError):
            connection.state = ConnectionState.ACTIVE  # type: ignore[misc]

    def test_model_copy_produces_new_snapshot(self) -> None:
        """Updates go through model_copy."""
        connection = _connection()
        updated = connection.model_copy(update={"state": ConnectionState.ACTIVE})

        assert updated.state is ConnectionState.ACTIVE
        assert connection.state is ConnectionState.PENDING

    def test_idle_seconds(self) -> None:
        """Idle time is measured from last activity."""
        connection = _connection()

        assert connection.idle_seconds(NOW + timedelta(seconds=12)) == 12.0

    def test_expiry_boundary_is_inclusive(self) -> None:
        """A connection idle for exactly the TTL is expired."""
        connection = _connection()

        assert not connection.is_expired(300, NOW + timedelta(seconds=299))
        assert connection.is_expired(300, NOW + timedelta(seconds=300))

    def test_rejects_non_positive_heartbeat(self) -> None:
        """Heartbeat interval must be positive."""
        with pytest.raises(ValidationError):
            _connection(heartbeat_interval=0)

    def test_rejects_unknown_fields(self) -> None:
        """Extra fields are forbidden."""
        with pytest.raises(ValidationError):
            _connection(owner="someone")
