"""Procedure table for JSON-RPC method resolution.

A procedure is a named handler object grouping related RPC methods
(``tool.list``, ``tool.execute``, ...). The table keeps an explicit
registration map from ``(procedure, method)`` to the callable serving it,
so resolution is a dictionary lookup and never reaches attributes that
were not deliberately exposed.

Methods are exposed by one of:
- an explicit mapping ``{"method": callable}`` or a list of attribute names
  passed to ``register``
- the ``rpc_method`` decorator on the handler's class

Thread Safety:
    All operations are guarded by an internal RLock. After startup the table
    is effectively read-only.

Example:
    >>> class Greeter:
    ...     @rpc_method
    ...     def hello(self, who: str) -> str:
    ...         return f"hello {who}"
    >>> table = ProcedureTable()
    >>> table.register("greeter", Greeter())
    >>> table.resolve_method("greeter", "hello")("ada")
    'hello ada'
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Mapping
from threading import RLock
from typing import Any, Callable, TypeVar, overload

from mcp_relay.observability import get_logger

logger = get_logger(__name__)

RpcCallable = Callable[..., Any]
F = TypeVar("F", bound=Callable[..., Any])

# Attribute set on functions exposed through the decorator
RPC_METHOD_ATTR = "__rpc_method__"


@overload
def rpc_method(func: F) -> F: ...


@overload
def rpc_method(*, name: str | None = None) -> Callable[[F], F]: ...


def rpc_method(func: F | None = None, *, name: str | None = None) -> Any:
    """Mark a handler method as callable over JSON-RPC.

    ``name`` overrides the RPC-visible method name, which lets a Python
    method such as ``list_tools`` serve ``tool.list``.

    Example:
        >>> class Tools:
        ...     @rpc_method(name="list")
        ...     def list_tools(self) -> dict: ...
    """

    def decorate(target: F) -> F:
        setattr(target, RPC_METHOD_ATTR, name or target.__name__)
        return target

    if func is not None:
        return decorate(func)
    return decorate


def validate_procedure_name(name: str) -> None:
    """Reject names that cannot round-trip through ``procedure.method``.

    Raises:
        ValueError: If the name is empty or contains a dot
    """
    if not name or "." in name:
        raise ValueError(f"Invalid procedure name: {name!r}")


def collect_rpc_methods(handler: object) -> dict[str, RpcCallable]:
    """Return the decorator-exposed methods of ``handler``, bound to it."""
    methods: dict[str, RpcCallable] = {}
    for attr_name, member in inspect.getmembers(type(handler)):
        rpc_name = getattr(member, RPC_METHOD_ATTR, None)
        if rpc_name is None:
            continue
        methods[rpc_name] = getattr(handler, attr_name)
    return methods


def _resolve_methods(
    handler: object,
    methods: Mapping[str, RpcCallable] | Iterable[str] | None,
) -> dict[str, RpcCallable]:
    if methods is None:
        resolved = collect_rpc_methods(handler)
    elif isinstance(methods, Mapping):
        resolved = dict(methods)
    else:
        resolved = {}
        for attr_name in methods:
            attr = getattr(handler, attr_name, None)
            if attr is None:
                raise ValueError(f"Handler {handler!r} has no method {attr_name!r}")
            resolved[attr_name] = attr

    for method_name, func in resolved.items():
        validate_procedure_name(method_name)
        if not callable(func):
            raise TypeError(f"RPC method {method_name!r} is not callable")
    return resolved


class ProcedureTable:
    """Registry of JSON-RPC procedures and their exposed methods.

    Re-registering a procedure name replaces the previous handler and all
    of its methods (last registration wins); the replacement is logged with
    ``is_override=True``.
    """

    def __init__(self) -> None:
        self._procedures: dict[str, object] = {}
        self._methods: dict[tuple[str, str], RpcCallable] = {}
        self._lock = RLock()

    def register(
        self,
        name: str,
        handler: object,
        methods: Mapping[str, RpcCallable] | Iterable[str] | None = None,
    ) -> None:
        """Register ``handler`` under ``name``.

        Args:
            name: Procedure name (no dots)
            handler: Object serving the procedure
            methods: Explicit ``{method: callable}`` map or attribute names.
                Defaults to the handler's ``rpc_method``-decorated methods.

        Raises:
            ValueError: If a name is invalid or a listed attribute is missing
            TypeError: If an exposed method is not callable
        """
        validate_procedure_name(name)
        resolved = _resolve_methods(handler, methods)
        with self._lock:
            is_override = name in self._procedures
            for key in [key for key in self._methods if key[0] == name]:
                del self._methods[key]
            self._procedures[name] = handler
            for method_name, func in resolved.items():
                self._methods[(name, method_name)] = func
        logger.debug(
            "mcp.procedure.registered",
            procedure=name,
            handler=type(handler).__name__,
            methods=sorted(resolved),
            is_override=is_override,
        )

    def unregister(self, name: str) -> bool:
        with self._lock:
            if name not in self._procedures:
                return False
            del self._procedures[name]
            for key in [key for key in self._methods if key[0] == name]:
                del self._methods[key]
            return True

    def resolve(self, name: str) -> object | None:
        with self._lock:
            return self._procedures.get(name)

    def resolve_method(self, procedure: str, method: str) -> RpcCallable | None:
        with self._lock:
            return self._methods.get((procedure, method))

    def has_procedure(self, name: str) -> bool:
        with self._lock:
            return name in self._procedures

    def list_procedures(self) -> list[str]:
        with self._lock:
            return sorted(self._procedures)

    def list_methods(self, procedure: str | None = None) -> list[str]:
        """Return ``procedure.method`` names, optionally for one procedure."""
        with self._lock:
            return sorted(
                f"{proc}.{method}"
                for proc, method in self._methods
                if procedure is None or proc == procedure
            )

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has_procedure(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._procedures)
