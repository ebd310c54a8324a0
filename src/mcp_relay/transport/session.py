"""Stream session: one SSE connection's lifecycle.

A StreamSession owns the outbound side of one connection:

- ``open()`` attaches it to the registry and queues the handshake frame
  carrying the connection id and the message endpoint.
- ``send()`` frames an event and queues it; events leave in send order.
- ``stream()`` yields frames for the HTTP response. It waits on the queue
  with the heartbeat interval as timeout: when an interval passes without
  traffic it checks the peer and emits a ``: heartbeat`` comment.
- ``close()`` queues a terminal ``close`` event, marks the session closed and
  closes the connection in the registry. A registry close (sweep, shutdown)
  ends the stream the same way.

I/O is injected: the session either feeds an async iterator consumed by the
web framework, or pumps frames into a ``FrameWriter`` via ``run()``; peer
liveness comes from a ``DisconnectCheck``.

Example:
    >>> connection = registry.create(heartbeat_interval=15)
    >>> session = StreamSession(connection.id, registry, disconnect_check=request.is_disconnected)
    >>> return StreamingResponse(session.stream(), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable
from typing import Any, Callable, Protocol

from mcp_relay.errors import ConnectionNotFoundError, InvalidTransitionError, TransportError
from mcp_relay.events import EventDispatcher
from mcp_relay.models.enums import ConnectionState
from mcp_relay.observability import get_logger, get_metrics
from mcp_relay.transport.registry import ConnectionRegistry
from mcp_relay.transport.sse import OutboundEvent, encode_comment, encode_event

logger = get_logger(__name__)

HANDSHAKE_EVENT = "connection"
CLOSE_EVENT = "close"
MESSAGE_EVENT = "message"

DEFAULT_RETRY_MS = 3000

DisconnectCheck = Callable[[], Awaitable[bool]]


class FrameWriter(Protocol):
    """Destination for encoded frames (a socket, a response body, a test buffer)."""

    async def write(self, frame: str) -> None: ...


class StreamSession:
    """Outbound SSE channel bound to one registry connection.

    Args:
        connection_id: Id returned by ``ConnectionRegistry.create``
        registry: Registry owning the connection
        heartbeat_interval: Seconds between liveness ticks; defaults to the
            connection's configured interval
        disconnect_check: Async callable returning True once the peer is gone
        events: Optional dispatcher for ``mcp.sse.*`` hooks
        endpoint: Message endpoint advertised in the handshake
        retry_ms: Reconnection delay hint sent with the handshake
        max_duration: Optional cap on the stream lifetime in seconds

    Raises:
        ConnectionNotFoundError: If the connection is unknown or closed
    """

    def __init__(
        self,
        connection_id: str,
        registry: ConnectionRegistry,
        *,
        heartbeat_interval: float | None = None,
        disconnect_check: DisconnectCheck | None = None,
        events: EventDispatcher | None = None,
        endpoint: str | None = None,
        retry_ms: int | None = DEFAULT_RETRY_MS,
        max_duration: float | None = None,
    ) -> None:
        connection = registry.get(connection_id)
        if connection is None or connection.state is ConnectionState.CLOSED:
            raise ConnectionNotFoundError(connection_id)
        self.connection_id = connection_id
        self.heartbeat_interval = heartbeat_interval or connection.heartbeat_interval
        self.endpoint = endpoint
        self.retry_ms = retry_ms
        self.max_duration = max_duration
        self._registry = registry
        self._disconnect_check = disconnect_check
        self._events = events
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._state = ConnectionState.PENDING
        self._close_reason: str | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._opened_at: float | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    @property
    def close_reason(self) -> str | None:
        return self._close_reason

    async def open(self) -> None:
        """Attach to the registry, activate the connection and queue the handshake.

        Raises:
            InvalidTransitionError: If the session was already opened
            SessionConflictError: If another live session owns the connection
        """
        if self._state is not ConnectionState.PENDING:
            raise InvalidTransitionError(
                self._state.value,
                ConnectionState.ACTIVE.value,
                details={"connection_id": self.connection_id},
            )
        self._loop = asyncio.get_running_loop()
        self._registry.attach(self.connection_id, self)
        self._registry.on_close(self.connection_id, self._on_registry_close)
        self._registry.activate(self.connection_id)
        self._state = ConnectionState.ACTIVE
        self._opened_at = time.monotonic()

        handshake: dict[str, Any] = {
            "type": HANDSHAKE_EVENT,
            "id": self.connection_id,
            "timestamp": int(time.time()),
        }
        if self.endpoint is not None:
            handshake["endpoint"] = self.endpoint
        self._enqueue(
            encode_event(OutboundEvent(data=handshake, event=HANDSHAKE_EVENT, retry=self.retry_ms))
        )

        metrics = get_metrics()
        metrics.increment_counter("mcp_sse_connections_opened_total")
        metrics.add_gauge("mcp_sse_connections_active", 1)
        logger.info(
            "mcp.sse.opened",
            connection_id=self.connection_id,
            heartbeat_interval=self.heartbeat_interval,
        )
        self._emit("mcp.sse.started", connection_id=self.connection_id)

    def send(self, event: OutboundEvent) -> bool:
        """Queue one event for the wire.

        Returns:
            False (and logs) when the session is not active; the peer is
            either gone or not connected yet.
        """
        if self._state is not ConnectionState.ACTIVE:
            logger.warning(
                "mcp.sse.send_skipped",
                connection_id=self.connection_id,
                state=self._state.value,
                event_name=event.event,
            )
            return False
        self._enqueue(encode_event(event))
        self._registry.touch(self.connection_id)
        get_metrics().increment_counter("mcp_sse_events_sent_total")
        self._emit(
            "mcp.sse.message.sent", connection_id=self.connection_id, event_name=event.event
        )
        return True

    def send_message(self, data: Any) -> bool:
        """Send ``data`` as a ``message`` event."""
        return self.send(OutboundEvent(data=data, event=MESSAGE_EVENT))

    def close(self, reason: str = "closed") -> None:
        """Flush a terminal ``close`` frame, end the stream and deregister.

        Closing an already closed session is a no-op.
        """
        if self.is_closed:
            return
        self._finish(reason, terminal_frame=True)
        self._registry.close(self.connection_id, reason)

    async def stream(self) -> AsyncIterator[str]:
        """Yield encoded frames until the session closes.

        Opens the session first if needed. Cancellation or an abandoned
        iterator (peer gone mid-write) closes the session.
        """
        if self._state is ConnectionState.PENDING:
            await self.open()
        try:
            while True:
                frame = await self._next_frame()
                if frame is None:
                    return
                yield frame
        except asyncio.CancelledError:
            self._abort("cancelled")
            raise
        finally:
            self._abort("stream_ended")

    async def run(self, writer: FrameWriter) -> None:
        """Pump frames into ``writer`` until the session closes.

        A failing write is treated as a disconnect: it is logged as a
        TransportError and the session is closed without retrying.
        """
        async for frame in self.stream():
            try:
                await writer.write(frame)
                flush = getattr(writer, "flush", None)
                if flush is not None:
                    await flush()
            except (OSError, RuntimeError) as e:
                error = TransportError(self.connection_id, str(e) or type(e).__name__)
                logger.warning(
                    "mcp.sse.write_failed",
                    connection_id=self.connection_id,
                    error=error.message,
                )
                self._abort("transport_error")
                return

    async def _next_frame(self) -> str | None:
        """Wait for the next queued frame, producing heartbeats on idle ticks."""
        while True:
            timeout = self.heartbeat_interval
            remaining = self._remaining_lifetime()
            if remaining is not None:
                if remaining <= 0:
                    self.close("max_duration")
                    return await self._queue.get()
                timeout = min(timeout, remaining)

            try:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

            if await self._peer_gone():
                logger.info("mcp.sse.client_disconnected", connection_id=self.connection_id)
                self._abort("disconnected")
                return None

            remaining = self._remaining_lifetime()
            if remaining is not None and remaining <= 0:
                continue

            self._registry.touch(self.connection_id)
            get_metrics().increment_counter("mcp_sse_heartbeats_total")
            self._emit("mcp.sse.heartbeat", connection_id=self.connection_id)
            return encode_comment()

    def _remaining_lifetime(self) -> float | None:
        if self.max_duration is None or self._opened_at is None:
            return None
        return self.max_duration - (time.monotonic() - self._opened_at)

    async def _peer_gone(self) -> bool:
        if self._disconnect_check is None:
            return False
        try:
            return await self._disconnect_check()
        except Exception as e:
            logger.debug(
                "mcp.sse.disconnect_check_error", connection_id=self.connection_id, error=str(e)
            )
            return True

    def _abort(self, reason: str) -> None:
        """Close without a terminal frame; the peer can no longer receive it."""
        if self.is_closed:
            return
        self._finish(reason, terminal_frame=False)
        self._registry.close(self.connection_id, reason)

    def _on_registry_close(self, connection_id: str, reason: str) -> None:
        if self.is_closed:
            return
        loop = self._loop
        if loop is not None and not loop.is_closed() and _running_loop() is not loop:
            loop.call_soon_threadsafe(self._finish, reason, True)
        else:
            self._finish(reason, terminal_frame=True)

    def _finish(self, reason: str, terminal_frame: bool) -> None:
        if self.is_closed:
            return
        was_active = self._state is ConnectionState.ACTIVE
        self._state = ConnectionState.CLOSED
        self._close_reason = reason
        if terminal_frame and was_active:
            self._queue.put_nowait(
                encode_event(
                    OutboundEvent(
                        data={
                            "type": CLOSE_EVENT,
                            "id": self.connection_id,
                            "timestamp": int(time.time()),
                            "reason": reason,
                        },
                        event=CLOSE_EVENT,
                    )
                )
            )
        self._queue.put_nowait(None)

        if was_active:
            metrics = get_metrics()
            metrics.increment_counter("mcp_sse_connections_closed_total", {"reason": reason})
            metrics.add_gauge("mcp_sse_connections_active", -1)
            if self._opened_at is not None:
                metrics.observe_histogram(
                    "mcp_sse_connection_duration_seconds", time.monotonic() - self._opened_at
                )
        logger.info("mcp.sse.closed", connection_id=self.connection_id, reason=reason)
        self._emit("mcp.sse.ended", connection_id=self.connection_id, reason=reason)

    def _enqueue(self, frame: str) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed() and _running_loop() is not loop:
            loop.call_soon_threadsafe(self._queue.put_nowait, frame)
        else:
            self._queue.put_nowait(frame)

    def _emit(self, name: str, /, **payload: Any) -> None:
        if self._events is not None:
            self._events.dispatch(name, **payload)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
