"""Observability module for MCP Relay.

Structured logging (structlog) and Prometheus-compatible metrics for the
router, stream sessions and relay.

Example:
    >>> from mcp_relay.observability import get_logger, get_metrics
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info("mcp.request.received", method="server.ping")
    >>>
    >>> metrics = get_metrics()
    >>> metrics.increment_counter("mcp_rpc_requests_total", {"method": "server.ping"})
"""

from mcp_relay.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    is_debug_mode,
    sanitize_for_logging,
)
from mcp_relay.observability.metrics import (
    MetricsCollector,
    get_metrics,
    reset_metrics,
)

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_metrics",
    "is_debug_mode",
    "reset_metrics",
    "MetricsCollector",
    "sanitize_for_logging",
]
