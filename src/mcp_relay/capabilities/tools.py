"""Tool building blocks.

A tool is a named operation with a JSON Schema for its parameters. The
``tool`` procedure validates params against ``get_schema()`` (jsonschema)
before calling ``execute``; plain callables taking a params dict are also
accepted by the catalog.

Two ready-made tools ship with the package:
- ``CommandTool`` runs a shell command and reports exit code and output.
- ``HttpTool`` performs an HTTP request with httpx and reports the response.

Both report failures in their result (``successful: false``) instead of
raising, so a client always gets a structured answer.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Any

import httpx

from mcp_relay.observability import get_logger

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 60
DEFAULT_HTTP_TIMEOUT = 30

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


def _still_required(fields: list[str], options: dict[str, Any]) -> list[str]:
    # A field with a configured default may be omitted from params
    return [field for field in fields if options.get(field) is None]


class Tool(ABC):
    """Base class for tools exposed through ``tool.execute``.

    Attributes:
        name: Registered tool name
        schema: JSON Schema for the params object (empty = accept anything)
        metadata: Descriptive data; always carries ``name`` and ``description``
    """

    def __init__(
        self,
        name: str,
        schema: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.schema: dict[str, Any] = dict(schema or {})
        self.metadata: dict[str, Any] = {"name": name, "description": "", **(metadata or {})}

    @abstractmethod
    async def execute(self, params: dict[str, Any]) -> Any:
        """Run the tool with already validated params."""

    def get_schema(self) -> dict[str, Any]:
        return self.schema

    def get_metadata(self) -> dict[str, Any]:
        return self.metadata

    def set_metadata(self, metadata: dict[str, Any]) -> Tool:
        """Merge ``metadata`` into the current metadata."""
        self.metadata.update(metadata)
        return self


class CommandTool(Tool):
    """Run a shell command.

    Params: ``command`` (required), ``cwd``, ``env``, ``timeout`` seconds.
    Defaults for any of them can be given as ``options``; params win, and a
    ``command`` set in options is no longer required in params.

    Example:
        >>> tool = CommandTool("shell")
        >>> await tool.execute({"command": "echo hi"})
        {'exit_code': 0, 'output': 'hi\\n', 'error_output': '', 'successful': True, 'command': 'echo hi'}
    """

    def __init__(
        self,
        name: str,
        options: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.options: dict[str, Any] = dict(options or {})
        schema = {
            "type": "object",
            "required": _still_required(["command"], self.options),
            "properties": {
                "command": {"type": "string", "description": "The command to execute"},
                "cwd": {"type": "string", "description": "The working directory for the command"},
                "env": {"type": "object", "description": "Environment variables for the command"},
                "timeout": {"type": "integer", "description": "The command timeout in seconds"},
            },
        }
        super().__init__(name, schema, {"description": "Executes shell commands", **(metadata or {})})

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        options = {**self.options, **params}
        command: str = options["command"]
        timeout = options.get("timeout") or DEFAULT_COMMAND_TIMEOUT
        env = None
        if isinstance(options.get("env"), dict):
            env = {**os.environ, **{str(k): str(v) for k, v in options["env"].items()}}

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=options.get("cwd"),
                env=env,
            )
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise TimeoutError(f"Command timed out after {timeout}s") from None
        except (OSError, TimeoutError) as e:
            logger.error("mcp.tool.command_failed", tool=self.name, command=command, error=str(e))
            return {
                "exit_code": -1,
                "error": str(e),
                "successful": False,
                "command": command,
            }

        exit_code = process.returncode if process.returncode is not None else -1
        return {
            "exit_code": exit_code,
            "output": stdout.decode(errors="replace"),
            "error_output": stderr.decode(errors="replace"),
            "successful": exit_code == 0,
            "command": command,
        }


class HttpTool(Tool):
    """Make an HTTP request with httpx.

    Params: ``url`` (required), ``method`` (GET by default), ``headers``,
    ``data`` (JSON body), ``query``, ``timeout`` seconds. JSON response
    bodies are decoded; anything else is returned as text. ``options`` give
    defaults for any param (params win); a ``url`` set there is not required.

    Args:
        transport: Optional httpx transport (e.g. ``httpx.MockTransport`` in tests)
    """

    def __init__(
        self,
        name: str,
        options: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.options: dict[str, Any] = dict(options or {})
        schema = {
            "type": "object",
            "required": _still_required(["url"], self.options),
            "properties": {
                "url": {"type": "string", "description": "The URL to request"},
                "method": {
                    "type": "string",
                    "enum": list(HTTP_METHODS),
                    "description": "The HTTP method to use",
                    "default": "GET",
                },
                "headers": {"type": "object", "description": "The HTTP headers to send"},
                "data": {"type": "object", "description": "The data to send with the request"},
                "query": {"type": "object", "description": "The query parameters to append to the URL"},
                "timeout": {"type": "integer", "description": "The request timeout in seconds"},
            },
        }
        super().__init__(
            name, schema, {"description": "Makes HTTP requests to external APIs", **(metadata or {})}
        )
        self._transport = transport

    async def execute(self, params: dict[str, Any]) -> dict[str, Any]:
        options = {**self.options, **params}
        url: str = options["url"]
        method = str(options.get("method") or "GET").upper()

        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(float(options.get("timeout") or DEFAULT_HTTP_TIMEOUT))
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport

        request_kwargs: dict[str, Any] = {
            "headers": options.get("headers") or None,
            "params": options.get("query") or None,
        }
        # Bodies only for methods that carry one
        if method not in ("GET", "HEAD", "OPTIONS") and options.get("data") is not None:
            request_kwargs["json"] = options["data"]

        try:
            if method not in HTTP_METHODS:
                raise ValueError(f"Unsupported HTTP method: {method}")
            async with httpx.AsyncClient(**kwargs) as client:
                response = await client.request(method, url, **request_kwargs)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("mcp.tool.http_failed", tool=self.name, url=url, method=method, error=str(e))
            return {"status": 0, "error": str(e), "successful": False}

        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "body": _response_body(response),
            "successful": response.is_success,
        }


def _response_body(response: httpx.Response) -> Any:
    if "application/json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text
