"""Tests for the connection registry."""

import asyncio
import re
import threading

import pytest

from mcp_relay.errors import ConnectionNotFoundError, SessionConflictError
from mcp_relay.models import ConnectionState
from mcp_relay.observability import get_metrics
from mcp_relay.testing import ManualClock
from mcp_relay.transport.registry import ConnectionRegistry, generate_connection_id


class FakeSession:
    def __init__(self, is_closed: bool = False) -> None:
        self.is_closed = is_closed


class TestConnectionIds:
    """Tests for connection id generation."""

    def test_ids_are_128_bit_hex(self) -> None:
        """Ids are 32 lowercase hex characters."""
        assert re.fullmatch(r"[0-9a-f]{32}", generate_connection_id())

    def test_ids_are_unique(self) -> None:
        """Consecutive ids differ."""
        assert len({generate_connection_id() for _ in range(1000)}) == 1000


class TestLifecycle:
    """Tests for create, activate, touch and close."""

    def test_create_is_pending(self, connection_registry: ConnectionRegistry) -> None:
        """New connections are pending with the default heartbeat."""
        connection = connection_registry.create()

        assert connection.state is ConnectionState.PENDING
        assert connection.heartbeat_interval == 1.0
        assert connection.id in connection_registry
        assert len(connection_registry) == 1

    def test_create_with_heartbeat(self, connection_registry: ConnectionRegistry) -> None:
        """An explicit heartbeat interval is kept."""
        assert connection_registry.create(heartbeat_interval=15).heartbeat_interval == 15

    def test_activate(self, connection_registry: ConnectionRegistry) -> None:
        """Activation moves pending to active and is idempotent."""
        connection = connection_registry.create()

        assert connection_registry.activate(connection.id).state is ConnectionState.ACTIVE
        assert connection_registry.activate(connection.id).state is ConnectionState.ACTIVE

    def test_activate_unknown(self, connection_registry: ConnectionRegistry) -> None:
        """Unknown ids cannot be activated."""
        with pytest.raises(ConnectionNotFoundError):
            connection_registry.activate("missing")

    def test_touch_refreshes_last_active(
        self, connection_registry: ConnectionRegistry, manual_clock: ManualClock
    ) -> None:
        """touch moves last_active to now."""
        connection = connection_registry.create()
        now = manual_clock.advance(10)

        assert connection_registry.touch(connection.id) is True
        snapshot = connection_registry.get(connection.id)
        assert snapshot is not None
        assert snapshot.last_active == now
        assert connection.last_active != now
        assert connection_registry.touch("missing") is False

    def test_close_is_idempotent(self, connection_registry: ConnectionRegistry) -> None:
        """Only the first close reports True."""
        connection = connection_registry.create()

        assert connection_registry.close(connection.id) is True
        assert connection_registry.close(connection.id) is False
        assert connection_registry.close("missing") is False

    def test_closed_connection_reports_closed(
        self, connection_registry: ConnectionRegistry
    ) -> None:
        """Closed connections stay visible to get with state closed."""
        connection = connection_registry.create()
        connection_registry.close(connection.id)

        snapshot = connection_registry.get(connection.id)

        assert snapshot is not None
        assert snapshot.state is ConnectionState.CLOSED
        assert connection.id not in connection_registry
        assert connection_registry.list_connections() == []

    def test_get_unknown(self, connection_registry: ConnectionRegistry) -> None:
        """Unknown ids return None."""
        assert connection_registry.get("missing") is None


class TestExpiry:
    """Tests for is_expired and sweep."""

    def test_is_expired_boundary(
        self, connection_registry: ConnectionRegistry, manual_clock: ManualClock
    ) -> None:
        """Expiry starts once idle time reaches the TTL."""
        connection = connection_registry.create()

        manual_clock.advance(299)
        assert not connection_registry.is_expired(connection.id, 300)
        manual_clock.advance(1)
        assert connection_registry.is_expired(connection.id, 300)
        assert not connection_registry.is_expired("missing", 300)

    def test_sweep_closes_idle_only(
        self, connection_registry: ConnectionRegistry, manual_clock: ManualClock
    ) -> None:
        """Sweep closes idle connections and spares active ones."""
        idle = connection_registry.create()
        busy = connection_registry.create()
        manual_clock.advance(200)
        connection_registry.touch(busy.id)
        manual_clock.advance(100)

        closed = connection_registry.sweep(300)

        assert closed == [idle.id]
        assert idle.id not in connection_registry
        assert busy.id in connection_registry
        assert get_metrics().get_counter("mcp_connections_swept_total") == 1.0

    def test_sweep_spares_connection_touched_after_scan(
        self, connection_registry: ConnectionRegistry, manual_clock: ManualClock
    ) -> None:
        """A connection refreshed while the sweep is running stays open."""
        first = connection_registry.create()
        second = connection_registry.create()
        manual_clock.advance(300)
        connection_registry.on_close(
            first.id, lambda cid, reason: connection_registry.touch(second.id)
        )

        closed = connection_registry.sweep(300)

        assert closed == [first.id]
        assert second.id in connection_registry
        assert get_metrics().get_counter("mcp_connections_swept_total") == 1.0

    def test_close_if_idle(
        self, connection_registry: ConnectionRegistry, manual_clock: ManualClock
    ) -> None:
        """close(idle_for=...) only closes connections still idle that long."""
        connection = connection_registry.create()
        manual_clock.advance(100)

        assert connection_registry.close(connection.id, idle_for=300) is False
        assert connection.id in connection_registry

        manual_clock.advance(200)
        assert connection_registry.close(connection.id, idle_for=300) is True
        assert connection.id not in connection_registry

    def test_sweep_zero_ttl_closes_everything(
        self, connection_registry: ConnectionRegistry
    ) -> None:
        """A zero TTL sweeps every connection."""
        connection_registry.create()
        connection_registry.create()

        assert len(connection_registry.sweep(0)) == 2
        assert len(connection_registry) == 0


class TestSessionsAndCallbacks:
    """Tests for session routing and close callbacks."""

    def test_attach_and_get_session(self, connection_registry: ConnectionRegistry) -> None:
        """Attached sessions are returned by get_session."""
        connection = connection_registry.create()
        session = FakeSession()

        connection_registry.attach(connection.id, session)

        assert connection_registry.get_session(connection.id) is session

    def test_attach_conflict(self, connection_registry: ConnectionRegistry) -> None:
        """A second live session is rejected."""
        connection = connection_registry.create()
        connection_registry.attach(connection.id, FakeSession())

        with pytest.raises(SessionConflictError):
            connection_registry.attach(connection.id, FakeSession())

    def test_attach_replaces_closed_session(
        self, connection_registry: ConnectionRegistry
    ) -> None:
        """A closed session may be replaced."""
        connection = connection_registry.create()
        connection_registry.attach(connection.id, FakeSession(is_closed=True))
        replacement = FakeSession()

        connection_registry.attach(connection.id, replacement)

        assert connection_registry.get_session(connection.id) is replacement

    def test_attach_unknown(self, connection_registry: ConnectionRegistry) -> None:
        """Sessions cannot be attached to unknown ids."""
        with pytest.raises(ConnectionNotFoundError):
            connection_registry.attach("missing", FakeSession())

    def test_close_drops_session_and_runs_callbacks(
        self, connection_registry: ConnectionRegistry
    ) -> None:
        """Close removes routing and calls callbacks with the reason."""
        connection = connection_registry.create()
        connection_registry.attach(connection.id, FakeSession())
        calls: list[tuple[str, str]] = []
        connection_registry.on_close(connection.id, lambda cid, reason: calls.append((cid, reason)))

        connection_registry.close(connection.id, "expired")

        assert calls == [(connection.id, "expired")]
        assert connection_registry.get_session(connection.id) is None

    def test_failing_callback_does_not_stop_close(
        self, connection_registry: ConnectionRegistry
    ) -> None:
        """A raising callback is logged and the others still run."""
        connection = connection_registry.create()
        calls: list[str] = []

        def broken(cid: str, reason: str) -> None:
            raise RuntimeError("callback bug")

        connection_registry.on_close(connection.id, broken)
        connection_registry.on_close(connection.id, lambda cid, reason: calls.append(reason))

        assert connection_registry.close(connection.id, "closed") is True
        assert calls == ["closed"]

    def test_close_all(self, connection_registry: ConnectionRegistry) -> None:
        """close_all closes every live connection."""
        connection_registry.create()
        connection_registry.create()

        assert connection_registry.close_all() == 2
        assert connection_registry.close_all() == 0


class TestConcurrency:
    """Tests for concurrent access."""

    def test_concurrent_close_closes_once(self) -> None:
        """Racing closes on one id report exactly one success."""
        registry = ConnectionRegistry()
        connection = registry.create()
        results: list[bool] = []
        lock = threading.Lock()

        def close() -> None:
            result = registry.close(connection.id)
            with lock:
                results.append(result)

        threads = [threading.Thread(target=close) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1

    def test_concurrent_creates(self) -> None:
        """Creating from many threads yields distinct connections."""
        registry = ConnectionRegistry()

        def create() -> None:
            for _ in range(50):
                registry.create()

        threads = [threading.Thread(target=create) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 200


class TestSweeper:
    """Tests for the background sweeper."""

    @pytest.mark.asyncio
    async def test_sweeper_closes_idle_connections(self) -> None:
        """The sweeper task closes connections on its interval."""
        registry = ConnectionRegistry()
        connection = registry.create()

        task = registry.start_sweeper(interval=0.01, ttl=0)
        assert registry.start_sweeper(interval=0.01, ttl=0) is task
        for _ in range(100):
            if connection.id not in registry:
                break
            await asyncio.sleep(0.01)
        await registry.stop_sweeper()

        assert connection.id not in registry
        assert task.done()

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        """Stopping a sweeper that never started is a no-op."""
        await ConnectionRegistry().stop_sweeper()
