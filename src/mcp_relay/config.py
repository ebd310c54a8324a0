"""Relay configuration.

Settings come from environment variables (``RelaySettings.from_env``) and an
optional JSON file named by ``MCP_CONFIG_FILE`` that declares extra
procedures, resources, tools and prompts by import path::

    {
      "server": {"name": "Docs", "version": "2.0.0"},
      "capabilities": {"tools": false, "logging": {"level": "debug"}},
      "procedures": {"docs": "myapp.rpc:DocsProcedure"},
      "resources": {
        "users": "myapp.resources:users",
        "posts": {"handler": "myapp.resources:PostResource", "options": {"limit": 10}}
      },
      "tools": {"search": {"handler": "myapp.tools:search", "schema": {"type": "object"}}},
      "prompts": {
        "system": "You are a helpful assistant.",
        "greeting": {"content": "Hello {{name}}", "metadata": {"description": "Greeting"}},
        "long": {"file": "prompts/long.txt"}
      }
    }

Import paths use ``module:attribute``. A class is instantiated: resource,
tool and prompt subclasses receive the registered name, other classes are
built without arguments.
"""

from __future__ import annotations

import importlib
import inspect
import json
import os
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator

from mcp_relay import __version__
from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.capabilities.prompts import FilePrompt, Prompt
from mcp_relay.capabilities.resources import Resource
from mcp_relay.capabilities.tools import Tool
from mcp_relay.models.base import RelayBaseModel
from mcp_relay.observability import get_logger
from mcp_relay.transport.procedures import ProcedureTable

logger = get_logger(__name__)

DEFAULT_SERVER_NAME = "MCP Relay"
DEFAULT_ROUTE_PREFIX = "/mcp"
DEFAULT_SSE_RETRY_MS = 3000
# 1 MiB
DEFAULT_MAX_REQUEST_SIZE = 1024 * 1024

ENV_SERVER_NAME = "MCP_SERVER_NAME"
ENV_SERVER_VERSION = "MCP_SERVER_VERSION"
ENV_ROUTE_PREFIX = "MCP_ROUTE_PREFIX"
ENV_HEARTBEAT_INTERVAL = "MCP_HEARTBEAT_INTERVAL"
ENV_CONNECTION_TTL = "MCP_CONNECTION_TTL"
ENV_SWEEP_INTERVAL = "MCP_SWEEP_INTERVAL"
ENV_SSE_RETRY_MS = "MCP_SSE_RETRY_MS"
ENV_MAX_CONNECTION_DURATION = "MCP_MAX_CONNECTION_DURATION"
ENV_MAX_REQUEST_SIZE = "MCP_MAX_REQUEST_SIZE"
ENV_LOG_LEVEL = "MCP_LOG_LEVEL"
ENV_CONFIG_FILE = "MCP_CONFIG_FILE"


class ConfigError(ValueError):
    """Raised when settings or the declarations file are invalid."""


class LoggingCapability(RelayBaseModel):
    enabled: bool = True
    level: str = "info"


class CapabilityToggles(RelayBaseModel):
    """Which built-in capability procedures are served."""

    resources: bool = True
    tools: bool = True
    prompts: bool = True
    logging: LoggingCapability = Field(default_factory=LoggingCapability)

    @field_validator("logging", mode="before")
    @classmethod
    def _logging_flag(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return {"enabled": value}
        return value

    def as_dict(self) -> dict[str, Any]:
        """Capability map reported by ``server.capabilities``."""
        capabilities: dict[str, Any] = {
            "resources": self.resources,
            "tools": self.tools,
            "prompts": self.prompts,
        }
        if self.logging.enabled:
            capabilities["logging"] = {"level": self.logging.level}
        return capabilities


class RelaySettings(RelayBaseModel):
    """Runtime settings of one relay application."""

    server_name: str = Field(default=DEFAULT_SERVER_NAME, min_length=1)
    server_version: str = Field(default=__version__, min_length=1)
    route_prefix: str = Field(default=DEFAULT_ROUTE_PREFIX)
    heartbeat_interval: float = Field(default=30.0, gt=0)
    connection_ttl: float = Field(default=300.0, gt=0)
    sweep_interval: float = Field(default=60.0, gt=0)
    sse_retry_ms: int = Field(default=DEFAULT_SSE_RETRY_MS, ge=0)
    max_connection_duration: float | None = Field(default=None, gt=0)
    max_request_size: int = Field(default=DEFAULT_MAX_REQUEST_SIZE, ge=1)
    capabilities: CapabilityToggles = Field(default_factory=CapabilityToggles)
    config_file: Path | None = None

    @field_validator("route_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        value = value.strip().strip("/")
        return f"/{value}" if value else ""

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RelaySettings:
        """Build settings from ``MCP_*`` environment variables.

        When ``MCP_CONFIG_FILE`` is set, its ``server`` and ``capabilities``
        sections are applied too; env values win over the file.

        Raises:
            ConfigError: If a value is malformed
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        capabilities: dict[str, Any] = {}

        config_file = env.get(ENV_CONFIG_FILE)
        if config_file:
            file_config = load_config_file(config_file)
            server = file_config.get("server", {})
            if "name" in server:
                values["server_name"] = server["name"]
            if "version" in server:
                values["server_version"] = server["version"]
            capabilities.update(file_config.get("capabilities", {}))
            values["config_file"] = config_file

        mapping = {
            ENV_SERVER_NAME: "server_name",
            ENV_SERVER_VERSION: "server_version",
            ENV_ROUTE_PREFIX: "route_prefix",
            ENV_HEARTBEAT_INTERVAL: "heartbeat_interval",
            ENV_CONNECTION_TTL: "connection_ttl",
            ENV_SWEEP_INTERVAL: "sweep_interval",
            ENV_SSE_RETRY_MS: "sse_retry_ms",
            ENV_MAX_CONNECTION_DURATION: "max_connection_duration",
            ENV_MAX_REQUEST_SIZE: "max_request_size",
        }
        for env_name, field_name in mapping.items():
            raw = env.get(env_name)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()

        log_level = env.get(ENV_LOG_LEVEL)
        if log_level:
            logging_caps = capabilities.get("logging")
            if not isinstance(logging_caps, dict):
                logging_caps = {} if logging_caps in (None, True) else {"enabled": False}
            capabilities["logging"] = {**logging_caps, "level": log_level.lower()}
        if capabilities:
            values["capabilities"] = capabilities

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid relay settings: {e}") from e

    @property
    def sse_path(self) -> str:
        return f"{self.route_prefix}/sse"

    @property
    def message_path(self) -> str:
        return f"{self.route_prefix}/message"

    @property
    def json_rpc_path(self) -> str:
        return f"{self.route_prefix}/json-rpc"

    @property
    def metrics_path(self) -> str:
        return f"{self.route_prefix}/metrics"


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read the JSON declarations file.

    Raises:
        ConfigError: If the file is missing, not JSON or not an object
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except ValueError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def import_object(path: str) -> Any:
    """Import ``module:attribute`` (dotted attributes allowed).

    Raises:
        ConfigError: If the path is malformed or cannot be imported
    """
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigError(f"Import path must look like 'module:attribute', got {path!r}")
    try:
        target: Any = importlib.import_module(module_name)
        for attr in attr_path.split("."):
            target = getattr(target, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot import {path!r}: {e}") from e
    return target


def _build(target: Any, name: str) -> Any:
    if not inspect.isclass(target):
        return target
    try:
        if issubclass(target, (Resource, Tool, Prompt)):
            return target(name)
        return target()
    except TypeError as e:
        raise ConfigError(f"Cannot instantiate {target.__qualname__} for {name!r}: {e}") from e


def apply_config(
    config: dict[str, Any],
    catalog: CapabilityCatalog,
    table: ProcedureTable | None = None,
    base_dir: Path | None = None,
) -> None:
    """Register the declarations of a loaded config file.

    Args:
        config: Parsed config file
        catalog: Catalog receiving resources, tools and prompts
        table: Procedure table receiving custom procedures
        base_dir: Directory that relative prompt file paths resolve against

    Raises:
        ConfigError: If a declaration is malformed or cannot be imported
    """
    for name, decl in config.get("resources", {}).items():
        if isinstance(decl, str):
            catalog.add_resource(name, _build(import_object(decl), name))
        elif isinstance(decl, dict) and "handler" in decl:
            catalog.add_resource(
                name, _build(import_object(decl["handler"]), name), decl.get("options")
            )
        else:
            raise ConfigError(f"Invalid resource declaration for {name!r}")

    for name, decl in config.get("tools", {}).items():
        if isinstance(decl, str):
            catalog.add_tool(name, _build(import_object(decl), name))
        elif isinstance(decl, dict) and "handler" in decl:
            catalog.add_tool(
                name,
                _build(import_object(decl["handler"]), name),
                schema=decl.get("schema"),
                metadata=decl.get("metadata"),
            )
        else:
            raise ConfigError(f"Invalid tool declaration for {name!r}")

    for name, decl in config.get("prompts", {}).items():
        if isinstance(decl, str):
            catalog.add_prompt(name, decl)
        elif isinstance(decl, dict) and "file" in decl:
            path = Path(decl["file"])
            if not path.is_absolute() and base_dir is not None:
                path = base_dir / path
            catalog.add_prompt(name, FilePrompt(name, path, decl.get("metadata")))
        elif isinstance(decl, dict) and "handler" in decl:
            catalog.add_prompt(name, decl.get("content"), handler=import_object(decl["handler"]))
        elif isinstance(decl, dict) and "content" in decl:
            catalog.add_prompt(name, Prompt(name, decl["content"], decl.get("metadata")))
        else:
            raise ConfigError(f"Invalid prompt declaration for {name!r}")

    if table is not None:
        for name, decl in config.get("procedures", {}).items():
            if not isinstance(decl, str):
                raise ConfigError(f"Invalid procedure declaration for {name!r}")
            table.register(name, _build(import_object(decl), name))

    logger.info(
        "mcp.config.applied",
        resources=len(config.get("resources", {})),
        tools=len(config.get("tools", {})),
        prompts=len(config.get("prompts", {})),
        procedures=len(config.get("procedures", {})),
    )
