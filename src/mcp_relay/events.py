"""Lifecycle event hooks.

Components report what they do through an EventDispatcher so applications
can observe requests, stream activity and capability usage without the
core depending on them. Listeners run synchronously on the emitting task;
a failing listener is logged and never breaks the emitter.

Emitted events:
    mcp.request.received      method, request_id
    mcp.response.sent         method, request_id, is_error
    mcp.sse.started           connection_id
    mcp.sse.ended             connection_id, reason
    mcp.sse.message.sent      connection_id, event_name
    mcp.sse.heartbeat         connection_id
    mcp.resource.accessed     name
    mcp.tool.executed         name

Example:
    >>> events = EventDispatcher()
    >>> events.listen("mcp.tool.executed", lambda name, **_: print(name))
    >>> events.dispatch("mcp.tool.executed", name="shell")
    shell
"""

from __future__ import annotations

from collections import defaultdict
from threading import RLock
from typing import Any, Callable

from mcp_relay.observability import get_logger

logger = get_logger(__name__)

EventListener = Callable[..., Any]


class EventDispatcher:
    """Registry of listeners keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)
        self._lock = RLock()

    def listen(self, name: str, listener: EventListener) -> None:
        with self._lock:
            self._listeners[name].append(listener)

    def forget(self, name: str, listener: EventListener | None = None) -> None:
        """Remove one listener, or every listener of ``name`` when None."""
        with self._lock:
            if listener is None:
                self._listeners.pop(name, None)
            elif listener in self._listeners.get(name, []):
                self._listeners[name].remove(listener)

    def has_listeners(self, name: str) -> bool:
        with self._lock:
            return bool(self._listeners.get(name))

    def dispatch(self, event: str, /, **payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(**payload)
            except Exception as e:
                logger.warning("mcp.event.listener_error", event_name=event, error=str(e))
