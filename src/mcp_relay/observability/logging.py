"""Structured logging configuration for MCP Relay.

This module configures structlog on top of the standard library so that
uvicorn's own records and relay events share one output stream.

Output formats:
- JSON renderer for production environments
- Console renderer with colors for development

Environment Variables:
    MCP_LOG_FORMAT: "json" or "console"
    MCP_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR
    MCP_SERVICE_NAME: Service name bound to every record
    MCP_DEBUG: "true" or "1" logs full params and error messages; otherwise
        sensitive fields are redacted and handler errors are summarized

Example:
    >>> from mcp_relay.observability.logging import configure_logging, get_logger
    >>> configure_logging(log_format="json", log_level="INFO")
    >>> logger = get_logger("mcp_relay.transport.session")
    >>> logger.info("mcp.sse.opened", connection_id="3f2a...")
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.typing import Processor

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_SERVICE_NAME = "mcp-relay"

ENV_LOG_FORMAT = "MCP_LOG_FORMAT"
ENV_LOG_LEVEL = "MCP_LOG_LEVEL"
ENV_SERVICE_NAME = "MCP_SERVICE_NAME"
ENV_DEBUG = "MCP_DEBUG"

LOG_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

REDACTED_PLACEHOLDER = "***REDACTED***"

# Key substrings (case-insensitive) whose values are redacted
SENSITIVE_KEY_FRAGMENTS = ("password", "token", "secret", "key", "authorization", "auth", "cookie")

_TRUTHY = ("true", "1", "yes", "on")

_configured = False


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED_PLACEHOLDER
            if any(fragment in str(k).lower() for fragment in SENSITIVE_KEY_FRAGMENTS)
            else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values redacted.

    Keys containing one of SENSITIVE_KEY_FRAGMENTS (case-insensitive) are
    replaced with REDACTED_PLACEHOLDER, at any depth of nested dicts and lists.

    Example:
        >>> sanitize_for_logging({"url": "https://x", "api_key": "sk_live"})
        {'url': 'https://x', 'api_key': '***REDACTED***'}
    """
    return _redact(data) if data else {}


def is_debug_mode() -> bool:
    """Return True if MCP_DEBUG is set to a truthy value."""
    return _env(ENV_DEBUG, "").strip().lower() in _TRUTHY


def _env(name: str, default: str) -> str:
    return os.environ.get(name) or default


def _pre_chain() -> list[Processor]:
    # Shared by structlog records and foreign stdlib records (uvicorn)
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> Processor:
    if log_format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    service_name: str | None = None,
    force: bool = False,
) -> None:
    """Configure structured logging for the process.

    Args:
        log_format: "json" or "console". Defaults to MCP_LOG_FORMAT or "console"
        log_level: Minimum level. Defaults to MCP_LOG_LEVEL or "INFO"
        service_name: Bound as ``service`` on every record. Defaults to
            MCP_SERVICE_NAME or "mcp-relay"
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    level_name = (log_level or _env(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)).upper()
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format or _env(ENV_LOG_FORMAT, DEFAULT_LOG_FORMAT)),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelName(level_name) if level_name in LOG_LEVEL_NAMES else logging.INFO)

    structlog.contextvars.bind_contextvars(
        service=service_name or _env(ENV_SERVICE_NAME, DEFAULT_SERVICE_NAME)
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring defaults on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("mcp.relay.delivered", connection_id="3f2a...")
    """
    if not _configured:
        configure_logging()
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in all subsequent logs of this context.

    Example:
        >>> bind_context(connection_id="3f2a...")
        >>> logger.info("mcp.sse.message.sent")  # includes connection_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
