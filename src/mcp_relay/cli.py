"""Command-line interface for MCP Relay.

Example:
    >>> # From terminal:
    >>> # mcp-relay --version
    >>> # mcp-relay serve --host 0.0.0.0 --port 8000 --config mcp.json
    >>> # mcp-relay methods --config mcp.json
"""

import os
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from mcp_relay import __version__
from mcp_relay.config import ENV_CONFIG_FILE, ConfigError, RelaySettings
from mcp_relay.observability import configure_logging
from mcp_relay.procedures import create_default_table

app = typer.Typer(help="MCP Relay CLI.")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Import string used by uvicorn when auto-reload needs to re-import the app
APP_IMPORT_PATH = "mcp_relay.transport.server:app"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show MCP Relay version and exit.",
    callback=_version_callback,
    is_eager=True,
)

# Module-level singleton options to avoid B008 linting errors
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="JSON file declaring procedures, resources, tools and prompts.",
)
HOST_OPTION = typer.Option(DEFAULT_HOST, "--host", help="Interface to bind.")
PORT_OPTION = typer.Option(DEFAULT_PORT, "--port", "-p", help="Port to bind.")
RELOAD_OPTION = typer.Option(False, "--reload", help="Restart the server on code changes.")
LOG_LEVEL_OPTION = typer.Option("info", "--log-level", help="Log level for server and relay.")


@app.callback()
def cli(version: bool = VERSION_OPTION) -> None:
    """MCP Relay CLI entrypoint."""


def _load_settings(config: Optional[Path]) -> RelaySettings:
    if config is not None:
        if not config.exists():
            raise typer.BadParameter(f"Config file not found: {config}")
        os.environ[ENV_CONFIG_FILE] = str(config)
    try:
        return RelaySettings.from_env()
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("serve")
def serve(
    host: str = HOST_OPTION,
    port: int = PORT_OPTION,
    reload: bool = RELOAD_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run the relay HTTP server with uvicorn."""
    level = log_level.lower()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(f"Unknown log level: {log_level} (use one of {', '.join(LOG_LEVELS)})")
    configure_logging(log_level=level, force=True)
    settings = _load_settings(config)

    if reload:
        # Reload re-imports the module-level app, which reads the same env
        uvicorn.run(APP_IMPORT_PATH, host=host, port=port, reload=True, log_level=level)
        return

    # Deferred: importing the server module builds its default app
    from mcp_relay.transport.server import create_app

    try:
        application = create_app(settings)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Serving {settings.server_name} on http://{host}:{port}{settings.route_prefix}")
    uvicorn.run(application, host=host, port=port, log_level=level)


@app.command("methods")
def methods(config: Optional[Path] = CONFIG_OPTION) -> None:
    """List the registered procedure.method names."""
    settings = _load_settings(config)
    try:
        table = create_default_table(settings)
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc
    for name in table.list_methods():
        typer.echo(name)


def main() -> None:
    """Run the MCP Relay CLI."""
    app()


if __name__ == "__main__":
    main()
