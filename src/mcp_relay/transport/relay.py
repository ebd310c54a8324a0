"""Out-of-band message relay.

Client-to-server messages arrive on one-shot HTTP requests tagged with a
connection id. The relay checks the id against the registry, acknowledges
immediately and processes the body on a background task: the router
dispatches it and each reply is pushed back over the connection's stream as
an ``event: message`` frame (a batch reply is one frame holding the array).

Example:
    >>> relay = MessageRelay(registry, router, ttl=300)
    >>> ack = await relay.deliver(connection_id, '{"jsonrpc":"2.0","method":"server.ping","id":1}')
    >>> ack.success
    True
"""

from __future__ import annotations

import asyncio
from typing import Any

from pydantic import Field

from mcp_relay.errors import ConnectionExpiredError, ConnectionNotFoundError
from mcp_relay.models.base import RelayBaseModel
from mcp_relay.models.enums import ConnectionState
from mcp_relay.observability import bind_context, get_logger, get_metrics
from mcp_relay.transport.jsonrpc import encode_reply
from mcp_relay.transport.registry import DEFAULT_CONNECTION_TTL, ConnectionRegistry
from mcp_relay.transport.router import JsonRpcRouter
from mcp_relay.transport.session import MESSAGE_EVENT, StreamSession
from mcp_relay.transport.sse import OutboundEvent

logger = get_logger(__name__)


class RelayAck(RelayBaseModel):
    """Immediate acknowledgement returned to the posting client."""

    success: bool = Field(default=True)
    connection_id: str = Field(min_length=1)


class MessageRelay:
    """Route inbound messages to the session owning their connection.

    Attributes:
        registry: Registry resolving connection ids to sessions
        router: Router processing the relayed bodies
        ttl: Idle seconds after which a connection is treated as expired
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        router: JsonRpcRouter,
        ttl: float = DEFAULT_CONNECTION_TTL,
    ) -> None:
        self.registry = registry
        self.router = router
        self.ttl = ttl
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of deliveries still being processed."""
        return len(self._tasks)

    async def deliver(self, connection_id: str, raw: str | bytes) -> RelayAck:
        """Accept ``raw`` for ``connection_id`` and schedule its processing.

        Raises:
            ConnectionNotFoundError: If the id is unknown, closed or has no
                live session; the body is not processed
            ConnectionExpiredError: If the connection has been idle beyond
                ``ttl``; the connection is closed
        """
        session = self._resolve(connection_id)
        self.registry.touch(connection_id)

        task = asyncio.create_task(
            self._process(session, raw), name=f"mcp-relay-{connection_id[:8]}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        get_metrics().increment_counter("mcp_relay_messages_total")
        logger.debug("mcp.relay.delivered", connection_id=connection_id, size=len(raw))
        return RelayAck(success=True, connection_id=connection_id)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _resolve(self, connection_id: str) -> StreamSession:
        connection = self.registry.get(connection_id)
        if connection is None or connection.state is ConnectionState.CLOSED:
            self._reject(connection_id, "not_found")
            raise ConnectionNotFoundError(connection_id)

        now = self.registry.now()
        if connection.is_expired(self.ttl, now):
            idle = connection.idle_seconds(now)
            self.registry.close(connection_id, "expired")
            self._reject(connection_id, "expired")
            raise ConnectionExpiredError(connection_id, idle)

        session = self.registry.get_session(connection_id)
        if not isinstance(session, StreamSession) or session.is_closed:
            self._reject(connection_id, "no_session")
            raise ConnectionNotFoundError(connection_id, details={"reason": "no active stream"})
        return session

    def _reject(self, connection_id: str, reason: str) -> None:
        get_metrics().increment_counter("mcp_relay_rejected_total", {"reason": reason})
        logger.info("mcp.relay.rejected", connection_id=connection_id, reason=reason)

    async def _process(self, session: StreamSession, raw: str | bytes) -> None:
        # Runs in its own task, so the binding stays local to this delivery
        bind_context(connection_id=session.connection_id)
        try:
            reply = await self.router.handle(raw)
        except Exception as e:
            # handle() folds handler errors into replies; only bugs land here
            get_metrics().increment_counter("mcp_relay_process_errors_total")
            logger.exception(
                "mcp.relay.process_error", connection_id=session.connection_id, error=str(e)
            )
            return
        if reply is None:
            return
        payload: Any = encode_reply(reply)
        try:
            sent = session.send(OutboundEvent(data=payload, event=MESSAGE_EVENT))
        except Exception as e:
            get_metrics().increment_counter("mcp_relay_process_errors_total")
            logger.exception(
                "mcp.relay.send_error", connection_id=session.connection_id, error=str(e)
            )
            return
        if not sent:
            get_metrics().increment_counter("mcp_relay_replies_dropped_total")
            logger.warning(
                "mcp.relay.reply_dropped",
                connection_id=session.connection_id,
                reason=session.close_reason,
            )
