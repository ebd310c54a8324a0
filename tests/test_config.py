"""Tests for relay settings and the declarations file."""

import json
from pathlib import Path

import pytest

from mcp_relay import __version__
from mcp_relay.capabilities import CapabilityCatalog, FilePrompt
from mcp_relay.capabilities.tools import CommandTool
from mcp_relay.config import (
    CapabilityToggles,
    ConfigError,
    RelaySettings,
    apply_config,
    import_object,
    load_config_file,
)
from mcp_relay.events import EventDispatcher
from mcp_relay.procedures import create_default_table
from mcp_relay.transport.procedures import ProcedureTable


def _write_config(directory: Path, config: dict) -> Path:
    path = directory / "mcp.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return path


class TestRelaySettings:
    """Tests for RelaySettings."""

    def test_defaults(self) -> None:
        """Defaults match the documented values."""
        settings = RelaySettings()

        assert settings.server_name == "MCP Relay"
        assert settings.server_version == __version__
        assert settings.heartbeat_interval == 30.0
        assert settings.connection_ttl == 300.0
        assert settings.max_connection_duration is None
        assert settings.max_request_size == 1024 * 1024
        assert settings.sse_path == "/mcp/sse"
        assert settings.message_path == "/mcp/message"
        assert settings.json_rpc_path == "/mcp/json-rpc"
        assert settings.metrics_path == "/mcp/metrics"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("mcp", "/mcp"), ("/rpc/v1/", "/rpc/v1"), ("/", ""), ("", "")],
    )
    def test_route_prefix_normalized(self, raw: str, expected: str) -> None:
        """Prefixes gain a leading slash and lose trailing ones."""
        assert RelaySettings(route_prefix=raw).route_prefix == expected

    def test_empty_prefix_paths(self) -> None:
        """An empty prefix serves from the root."""
        assert RelaySettings(route_prefix="").sse_path == "/sse"


class TestFromEnv:
    """Tests for RelaySettings.from_env."""

    def test_reads_env(self) -> None:
        """MCP_* variables populate the settings."""
        settings = RelaySettings.from_env(
            {
                "MCP_SERVER_NAME": "Docs",
                "MCP_HEARTBEAT_INTERVAL": "5",
                "MCP_CONNECTION_TTL": "60",
                "MCP_MAX_CONNECTION_DURATION": "3600",
                "MCP_ROUTE_PREFIX": "api",
                "MCP_SSE_RETRY_MS": "1000",
            }
        )

        assert settings.server_name == "Docs"
        assert settings.heartbeat_interval == 5.0
        assert settings.connection_ttl == 60.0
        assert settings.max_connection_duration == 3600.0
        assert settings.route_prefix == "/api"
        assert settings.sse_retry_ms == 1000

    def test_blank_values_are_ignored(self) -> None:
        """Empty variables fall back to defaults."""
        assert RelaySettings.from_env({"MCP_HEARTBEAT_INTERVAL": " "}).heartbeat_interval == 30.0

    def test_invalid_value(self) -> None:
        """Malformed values raise ConfigError."""
        with pytest.raises(ConfigError):
            RelaySettings.from_env({"MCP_HEARTBEAT_INTERVAL": "soon"})

    def test_non_positive_interval(self) -> None:
        """Intervals must be positive."""
        with pytest.raises(ConfigError):
            RelaySettings.from_env({"MCP_CONNECTION_TTL": "0"})

    def test_log_level_sets_logging_capability(self) -> None:
        """MCP_LOG_LEVEL is reported as the logging capability level."""
        settings = RelaySettings.from_env({"MCP_LOG_LEVEL": "DEBUG"})

        assert settings.capabilities.logging.level == "debug"

    def test_config_file_sections(self, tmp_path: Path) -> None:
        """The file's server and capabilities sections apply; env wins."""
        path = _write_config(
            tmp_path,
            {
                "server": {"name": "From File", "version": "9.9.9"},
                "capabilities": {"tools": False, "logging": False},
            },
        )

        settings = RelaySettings.from_env(
            {"MCP_CONFIG_FILE": str(path), "MCP_SERVER_NAME": "From Env", "MCP_LOG_LEVEL": "warning"}
        )

        assert settings.server_name == "From Env"
        assert settings.server_version == "9.9.9"
        assert settings.capabilities.tools is False
        assert settings.capabilities.logging.enabled is False
        assert settings.config_file == path

    def test_missing_config_file(self, tmp_path: Path) -> None:
        """A missing config file is a ConfigError."""
        with pytest.raises(ConfigError):
            RelaySettings.from_env({"MCP_CONFIG_FILE": str(tmp_path / "missing.json")})


class TestCapabilityToggles:
    """Tests for CapabilityToggles."""

    def test_logging_flag_coerced(self) -> None:
        """A bare boolean toggles logging."""
        toggles = CapabilityToggles.model_validate({"logging": False})

        assert toggles.logging.enabled is False
        assert toggles.as_dict() == {"resources": True, "tools": True, "prompts": True}

    def test_logging_level_reported(self) -> None:
        """Enabled logging reports its level."""
        toggles = CapabilityToggles.model_validate({"logging": {"level": "error"}})

        assert toggles.as_dict()["logging"] == {"level": "error"}


class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Non-JSON files are rejected."""
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")

        with pytest.raises(ConfigError, match="not valid JSON"):
            load_config_file(path)

    def test_non_object(self, tmp_path: Path) -> None:
        """The top level must be an object."""
        path = tmp_path / "list.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ConfigError, match="JSON object"):
            load_config_file(path)


class TestImportObject:
    """Tests for import_object."""

    def test_imports_attribute(self) -> None:
        """module:attribute paths resolve."""
        assert import_object("json:dumps") is json.dumps
        assert import_object("os:path.join") is not None

    @pytest.mark.parametrize("path", ["json", ":dumps", "json:", "no_such_module_xyz:x", "json:nope"])
    def test_invalid_paths(self, path: str) -> None:
        """Malformed or unresolvable paths raise ConfigError."""
        with pytest.raises(ConfigError):
            import_object(path)


class TestApplyConfig:
    """Tests for apply_config."""

    def test_registers_declarations(self, tmp_path: Path) -> None:
        """Resources, tools, prompts and procedures are registered."""
        (tmp_path / "prompts").mkdir()
        (tmp_path / "prompts" / "long.txt").write_text("Long {{x}}", encoding="utf-8")
        catalog = CapabilityCatalog()
        table = ProcedureTable()
        config = {
            "resources": {
                "encoder": "json:dumps",
                "paged": {"handler": "json:dumps", "options": {"limit": 10}},
            },
            "tools": {
                "shell": "mcp_relay.capabilities.tools:CommandTool",
                "http": {
                    "handler": "mcp_relay.capabilities.tools:HttpTool",
                    "metadata": {"owner": "ops"},
                },
            },
            "prompts": {
                "system": "You are helpful.",
                "greeting": {"content": "Hello {{name}}", "metadata": {"description": "Greeting"}},
                "long": {"file": "prompts/long.txt"},
            },
            "procedures": {"hooks": "mcp_relay.events:EventDispatcher"},
        }

        apply_config(config, catalog, table, base_dir=tmp_path)

        assert catalog.get_resource("paged").options == {"limit": 10}
        shell = catalog.get_tool("shell").handler
        assert isinstance(shell, CommandTool)
        assert shell.name == "shell"
        assert catalog.get_tool("http").metadata["owner"] == "ops"
        assert catalog.get_prompt("system").content == "You are helpful."
        assert catalog.get_prompt("greeting").metadata["description"] == "Greeting"
        long_prompt = catalog.get_prompt("long").handler
        assert isinstance(long_prompt, FilePrompt)
        assert long_prompt.process({"x": 1}) == "Long 1"
        assert isinstance(table.resolve("hooks"), EventDispatcher)

    @pytest.mark.parametrize(
        "config",
        [
            {"resources": {"r": 42}},
            {"tools": {"t": {"schema": {}}}},
            {"prompts": {"p": {"metadata": {}}}},
            {"procedures": {"x": {"handler": "json:dumps"}}},
        ],
    )
    def test_invalid_declarations(self, config: dict) -> None:
        """Malformed declarations raise ConfigError."""
        with pytest.raises(ConfigError):
            apply_config(config, CapabilityCatalog(), ProcedureTable())

    @pytest.mark.parametrize(
        "config",
        [
            {"procedures": {"p": "mcp_relay.capabilities.prompts:FilePrompt"}},
            {"tools": {"t": {"handler": "mcp_relay.capabilities.prompts:FilePrompt"}}},
        ],
    )
    def test_unbuildable_class(self, config: dict) -> None:
        """Classes whose constructor needs more arguments raise ConfigError."""
        with pytest.raises(ConfigError, match="Cannot instantiate FilePrompt"):
            apply_config(config, CapabilityCatalog(), ProcedureTable())

    def test_default_table_applies_file(self, tmp_path: Path) -> None:
        """create_default_table loads the configured file."""
        path = _write_config(tmp_path, {"prompts": {"hello": "Hi {{name}}"}})
        catalog = CapabilityCatalog()

        create_default_table(RelaySettings(config_file=path), catalog)

        assert catalog.get_prompt("hello").content == "Hi {{name}}"
