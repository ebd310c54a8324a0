"""Capability catalog.

Holds the resources, tools and prompts served by the built-in ``resource``,
``tool`` and ``prompt`` procedures. Handlers may be the building-block
classes (``Resource``, ``Tool``, ``Prompt``) or plain callables:

- resource callable: ``handler(params) -> data``
- tool callable: ``handler(params) -> result``
- prompt callable: ``handler(content, variables) -> str``

Registering an existing name replaces the entry (last registration wins).

Example:
    >>> catalog = CapabilityCatalog()
    >>> catalog.add_resource("config", StaticResource("config", {"debug": False}))
    >>> catalog.add_prompt("greeting", "Hello {{name}}")
    >>> sorted(catalog.prompts())
    ['greeting']
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Union

from mcp_relay.capabilities.prompts import Prompt
from mcp_relay.capabilities.resources import Resource
from mcp_relay.capabilities.tools import Tool
from mcp_relay.errors import PromptNotFoundError, ResourceNotFoundError, ToolNotFoundError
from mcp_relay.observability import get_logger

logger = get_logger(__name__)

ResourceHandler = Union[Resource, Callable[[dict[str, Any]], Any]]
ToolHandler = Union[Tool, Callable[[dict[str, Any]], Any]]
PromptHandler = Callable[[str, dict[str, Any]], str]


@dataclass
class ResourceEntry:
    name: str
    handler: ResourceHandler
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        if isinstance(self.handler, Resource):
            return self.handler.get_metadata()
        return {}

    @property
    def schema(self) -> dict[str, Any] | None:
        if isinstance(self.handler, Resource):
            return self.handler.get_schema()
        return None


@dataclass
class ToolEntry:
    name: str
    handler: ToolHandler
    schema: dict[str, Any] | None = None
    extra_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        if isinstance(self.handler, Tool):
            return {**self.handler.get_metadata(), **self.extra_metadata}
        return dict(self.extra_metadata)

    @property
    def effective_schema(self) -> dict[str, Any] | None:
        """Explicit schema, else the tool's own, else None."""
        if self.schema is not None:
            return self.schema
        if isinstance(self.handler, Tool):
            return self.handler.get_schema() or None
        return None


@dataclass
class PromptEntry:
    name: str
    content: str | None = None
    handler: Prompt | PromptHandler | None = None

    @property
    def metadata(self) -> dict[str, Any]:
        if isinstance(self.handler, Prompt):
            return self.handler.get_metadata()
        return {}


class CapabilityCatalog:
    """Thread-safe registry of resources, tools and prompts."""

    def __init__(self) -> None:
        self._resources: dict[str, ResourceEntry] = {}
        self._tools: dict[str, ToolEntry] = {}
        self._prompts: dict[str, PromptEntry] = {}
        self._lock = RLock()

    def add_resource(
        self, name: str, handler: ResourceHandler, options: dict[str, Any] | None = None
    ) -> None:
        """Register a resource; ``options`` are defaults merged under request params."""
        if not callable(handler) and not isinstance(handler, Resource):
            raise TypeError(f"Resource handler for {name!r} must be a Resource or callable")
        with self._lock:
            is_override = name in self._resources
            self._resources[name] = ResourceEntry(name, handler, dict(options or {}))
        logger.debug("mcp.resource.registered", name=name, is_override=is_override)

    def add_tool(
        self,
        name: str,
        handler: ToolHandler,
        schema: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Register a tool; ``schema`` overrides the tool's own parameter schema."""
        if not callable(handler) and not isinstance(handler, Tool):
            raise TypeError(f"Tool handler for {name!r} must be a Tool or callable")
        with self._lock:
            is_override = name in self._tools
            self._tools[name] = ToolEntry(name, handler, schema, dict(metadata or {}))
        logger.debug("mcp.tool.registered", name=name, is_override=is_override)

    def add_prompt(
        self,
        name: str,
        content: str | Prompt | None = None,
        handler: PromptHandler | None = None,
    ) -> None:
        """Register a prompt from a template string, a ``Prompt`` or a callable."""
        if isinstance(content, Prompt):
            entry = PromptEntry(name, content.content, content)
        else:
            if content is None and handler is None:
                raise ValueError(f"Prompt {name!r} needs content or a handler")
            entry = PromptEntry(name, content, handler)
        with self._lock:
            is_override = name in self._prompts
            self._prompts[name] = entry
        logger.debug("mcp.prompt.registered", name=name, is_override=is_override)

    def get_resource(self, name: str) -> ResourceEntry:
        with self._lock:
            entry = self._resources.get(name)
        if entry is None:
            raise ResourceNotFoundError(name)
        return entry

    def get_tool(self, name: str) -> ToolEntry:
        with self._lock:
            entry = self._tools.get(name)
        if entry is None:
            raise ToolNotFoundError(name)
        return entry

    def get_prompt(self, name: str) -> PromptEntry:
        with self._lock:
            entry = self._prompts.get(name)
        if entry is None:
            raise PromptNotFoundError(name)
        return entry

    def resources(self) -> dict[str, ResourceEntry]:
        with self._lock:
            return dict(self._resources)

    def tools(self) -> dict[str, ToolEntry]:
        with self._lock:
            return dict(self._tools)

    def prompts(self) -> dict[str, PromptEntry]:
        with self._lock:
            return dict(self._prompts)
