"""Resource building blocks.

A resource is named, read-only data served by ``resource.get``. Subclass
``Resource`` and implement ``get_data``, wrap a fixed value in
``StaticResource``, or register a plain callable taking the params dict.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Resource(ABC):
    """Base class for resources.

    Attributes:
        name: Registered resource name
        metadata: Descriptive data; always carries ``name`` and ``description``
        schema: Optional JSON Schema describing the data
    """

    def __init__(
        self,
        name: str,
        metadata: dict[str, Any] | None = None,
        schema: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.metadata: dict[str, Any] = {"name": name, "description": "", **(metadata or {})}
        self.schema = schema

    @abstractmethod
    def get_data(self, params: dict[str, Any]) -> Any:
        """Return the resource data; may be a coroutine function in subclasses."""

    def get_schema(self) -> dict[str, Any] | None:
        return self.schema

    def get_metadata(self) -> dict[str, Any]:
        return self.metadata

    def set_metadata(self, metadata: dict[str, Any]) -> Resource:
        self.metadata.update(metadata)
        return self


class StaticResource(Resource):
    """Resource returning a fixed value regardless of params."""

    def __init__(
        self,
        name: str,
        value: Any,
        metadata: dict[str, Any] | None = None,
        schema: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(name, metadata, schema)
        self.value = value

    def get_data(self, params: dict[str, Any]) -> Any:
        return self.value
