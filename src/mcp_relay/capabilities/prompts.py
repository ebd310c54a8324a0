"""Prompt building blocks.

Prompts are text templates with ``{{name}}`` placeholders. Rendering
replaces placeholders found in the variables and leaves the others intact,
so a partially filled prompt is still readable.

Example:
    >>> render_template("Hello {{ who }}, {{missing}}", {"who": "Ada"})
    'Hello Ada, {{missing}}'
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from mcp_relay.observability import get_logger

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def render_template(content: str, variables: dict[str, Any] | None = None) -> str:
    """Replace ``{{var}}`` placeholders with values from ``variables``."""
    values = variables or {}

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1).strip()
        if key in values and values[key] is not None:
            return str(values[key])
        return match.group(0)

    return _PLACEHOLDER.sub(substitute, content)


class Prompt:
    """A named prompt template.

    Attributes:
        name: Registered prompt name
        content: Template text
        metadata: Descriptive data; always carries ``name`` and ``description``
    """

    def __init__(
        self, name: str, content: str = "", metadata: dict[str, Any] | None = None
    ) -> None:
        self.name = name
        self.content = content
        self.metadata: dict[str, Any] = {"name": name, "description": "", **(metadata or {})}

    def process(self, variables: dict[str, Any] | None = None) -> str:
        return render_template(self.content, variables)

    def get_metadata(self) -> dict[str, Any]:
        return self.metadata

    def set_metadata(self, metadata: dict[str, Any]) -> Prompt:
        self.metadata.update(metadata)
        return self


class FilePrompt(Prompt):
    """Prompt whose template is loaded from a file.

    A missing or unreadable file yields empty content and a warning;
    ``reload()`` re-reads it.
    """

    def __init__(
        self, name: str, path: str | Path, metadata: dict[str, Any] | None = None
    ) -> None:
        self.path = Path(path)
        super().__init__(name, self._load(), metadata)

    def reload(self) -> FilePrompt:
        self.content = self._load()
        return self

    def _load(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("mcp.prompt.file_missing", path=str(self.path))
        except OSError as e:
            logger.error("mcp.prompt.file_error", path=str(self.path), error=str(e))
        return ""
