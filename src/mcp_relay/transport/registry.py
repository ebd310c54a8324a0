"""Connection registry.

The single source of truth for connection identity and liveness. The
stream-opening path, each session's heartbeat timer and relay requests all
go through it; every mutation runs under one internal lock so state changes
for a connection id are mutually exclusive.

Closing a connection marks it closed, drops its routing entry (the attached
session) and fires the close callbacks registered for it, which is how a
sweep or an explicit close cancels the owning stream. Recently closed
connections stay visible to ``get`` with state ``closed``.

Thread Safety:
    All public methods are thread-safe (internal RLock). Close callbacks run
    outside the lock.

Example:
    >>> registry = ConnectionRegistry()
    >>> conn = registry.create(heartbeat_interval=15)
    >>> registry.activate(conn.id).state
    <ConnectionState.ACTIVE: 'active'>
    >>> registry.close(conn.id)
    True
    >>> registry.close(conn.id)
    False
"""

from __future__ import annotations

import asyncio
import secrets
from collections import OrderedDict
from contextlib import suppress
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Protocol

from mcp_relay.errors import (
    ConnectionNotFoundError,
    InvalidTransitionError,
    SessionConflictError,
)
from mcp_relay.models.connection import Connection
from mcp_relay.models.enums import ConnectionState
from mcp_relay.observability import get_logger, get_metrics

logger = get_logger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_CONNECTION_TTL = 300.0
DEFAULT_SWEEP_INTERVAL = 60.0

# 16 random bytes = 128-bit connection ids
CONNECTION_ID_BYTES = 16

# Closed connections remembered so lookups can report them as closed
CLOSED_HISTORY_SIZE = 1024

CloseCallback = Callable[[str, str], None]


class AttachedSession(Protocol):
    """What the registry needs to know about a routed session."""

    @property
    def is_closed(self) -> bool: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_connection_id() -> str:
    """Return a new 128-bit random connection id as 32 hex characters."""
    return secrets.token_hex(CONNECTION_ID_BYTES)


class ConnectionRegistry:
    """In-process registry of streaming connections.

    Args:
        clock: Returns the current UTC time; injectable for tests
        default_heartbeat_interval: Interval used when ``create`` gets none
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        default_heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ) -> None:
        self._clock = clock or _utcnow
        self._default_heartbeat_interval = default_heartbeat_interval
        self._connections: dict[str, Connection] = {}
        self._closed: OrderedDict[str, Connection] = OrderedDict()
        self._sessions: dict[str, AttachedSession] = {}
        self._close_callbacks: dict[str, list[CloseCallback]] = {}
        self._lock = RLock()
        self._sweeper_task: asyncio.Task[None] | None = None

    def now(self) -> datetime:
        return self._clock()

    def create(self, heartbeat_interval: float | None = None) -> Connection:
        """Allocate a new pending connection with a fresh id."""
        now = self._clock()
        with self._lock:
            connection_id = generate_connection_id()
            while connection_id in self._connections:
                connection_id = generate_connection_id()
            connection = Connection(
                id=connection_id,
                created_at=now,
                last_active=now,
                state=ConnectionState.PENDING,
                heartbeat_interval=heartbeat_interval or self._default_heartbeat_interval,
            )
            self._connections[connection_id] = connection
        logger.debug("mcp.connection.created", connection_id=connection_id)
        return connection

    def activate(self, connection_id: str) -> Connection:
        """Transition a connection from pending to active.

        Activating an already active connection is a no-op.

        Raises:
            ConnectionNotFoundError: If the id is unknown or closed
        """
        with self._lock:
            connection = self._require(connection_id)
            if connection.state is ConnectionState.ACTIVE:
                return connection
            if not connection.state.can_transition_to(ConnectionState.ACTIVE):
                raise InvalidTransitionError(
                    connection.state.value,
                    ConnectionState.ACTIVE.value,
                    details={"connection_id": connection_id},
                )
            connection = connection.model_copy(
                update={"state": ConnectionState.ACTIVE, "last_active": self._clock()}
            )
            self._connections[connection_id] = connection
        logger.debug("mcp.connection.activated", connection_id=connection_id)
        return connection

    def touch(self, connection_id: str) -> bool:
        """Refresh ``last_active``; returns False if the id is unknown."""
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return False
            self._connections[connection_id] = connection.model_copy(
                update={"last_active": self._clock()}
            )
            return True

    def get(self, connection_id: str) -> Connection | None:
        """Return the connection snapshot; recently closed ones report ``closed``."""
        with self._lock:
            return self._connections.get(connection_id) or self._closed.get(connection_id)

    def is_expired(self, connection_id: str, ttl: float) -> bool:
        """Return True if the connection exists and has been idle for ``ttl``."""
        with self._lock:
            connection = self._connections.get(connection_id)
        return connection is not None and connection.is_expired(ttl, self._clock())

    def attach(self, connection_id: str, session: AttachedSession) -> None:
        """Route ``connection_id`` to ``session``.

        Raises:
            ConnectionNotFoundError: If the id is unknown or closed
            SessionConflictError: If another live session is attached
        """
        with self._lock:
            self._require(connection_id)
            current = self._sessions.get(connection_id)
            if current is not None and current is not session and not current.is_closed:
                raise SessionConflictError(connection_id)
            self._sessions[connection_id] = session

    def get_session(self, connection_id: str) -> AttachedSession | None:
        with self._lock:
            return self._sessions.get(connection_id)

    def on_close(self, connection_id: str, callback: CloseCallback) -> None:
        """Call ``callback(connection_id, reason)`` when the connection closes.

        Raises:
            ConnectionNotFoundError: If the id is unknown or closed
        """
        with self._lock:
            self._require(connection_id)
            self._close_callbacks.setdefault(connection_id, []).append(callback)

    def close(
        self, connection_id: str, reason: str = "closed", *, idle_for: float | None = None
    ) -> bool:
        """Close a connection and drop its routing entries.

        Idempotent: returns True when this call closed the connection and
        False when it was unknown or already closed. With ``idle_for`` the
        connection is only closed if it is still idle for that many seconds
        at the moment of closing.
        """
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return False
            if idle_for is not None and not connection.is_expired(idle_for, self._clock()):
                return False
            del self._connections[connection_id]
            self._sessions.pop(connection_id, None)
            callbacks = self._close_callbacks.pop(connection_id, [])
            self._closed[connection_id] = connection.model_copy(
                update={"state": ConnectionState.CLOSED}
            )
            while len(self._closed) > CLOSED_HISTORY_SIZE:
                self._closed.popitem(last=False)

        logger.info(
            "mcp.connection.closed",
            connection_id=connection_id,
            reason=reason,
            lifetime_seconds=round((self._clock() - connection.created_at).total_seconds(), 3),
        )
        for callback in callbacks:
            try:
                callback(connection_id, reason)
            except Exception as e:
                logger.warning(
                    "mcp.connection.close_callback_error",
                    connection_id=connection_id,
                    error=str(e),
                )
        return True

    def sweep(self, ttl: float) -> list[str]:
        """Force-close every connection idle for at least ``ttl`` seconds.

        Returns:
            Ids of the connections closed by this sweep
        """
        now = self._clock()
        with self._lock:
            expired = [
                connection_id
                for connection_id, connection in self._connections.items()
                if connection.is_expired(ttl, now)
            ]
        # Activity between the scan and the close keeps a connection open
        closed = [
            connection_id
            for connection_id in expired
            if self.close(connection_id, "expired", idle_for=ttl)
        ]
        if closed:
            get_metrics().increment_counter("mcp_connections_swept_total", value=float(len(closed)))
            logger.info("mcp.connection.swept", count=len(closed), ttl=ttl)
        return closed

    def close_all(self, reason: str = "shutdown") -> int:
        with self._lock:
            connection_ids = list(self._connections)
        return sum(1 for connection_id in connection_ids if self.close(connection_id, reason))

    def list_connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections

    def start_sweeper(self, interval: float, ttl: float) -> asyncio.Task[None]:
        """Start the background task sweeping idle connections every ``interval``."""
        if self._sweeper_task is not None and not self._sweeper_task.done():
            return self._sweeper_task
        self._sweeper_task = asyncio.create_task(
            self._sweep_loop(interval, ttl), name="mcp-connection-sweeper"
        )
        logger.debug("mcp.sweeper.started", interval=interval, ttl=ttl)
        return self._sweeper_task

    async def stop_sweeper(self) -> None:
        task, self._sweeper_task = self._sweeper_task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.debug("mcp.sweeper.stopped")

    async def _sweep_loop(self, interval: float, ttl: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep(ttl)
            except Exception as e:
                logger.warning("mcp.sweeper.error", error=str(e))

    def _require(self, connection_id: str) -> Connection:
        connection = self._connections.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        return connection
