"""Shared helpers for the built-in procedures."""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable

from mcp_relay.events import EventDispatcher


async def call_handler(func: Callable[..., Any], *args: Any) -> Any:
    """Call a capability handler without blocking the event loop.

    Coroutine functions are awaited; sync callables run in the default
    executor and an awaitable they return is awaited too.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(func, *args))
    if inspect.isawaitable(result):
        result = await result
    return result


class BaseProcedure:
    """Base for procedures that report capability usage through events."""

    def __init__(self, events: EventDispatcher | None = None) -> None:
        self.events = events

    def emit(self, event: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.dispatch(event, **payload)
