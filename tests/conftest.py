"""Shared pytest fixtures for MCP Relay tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from mcp_relay.observability import reset_metrics

# Load mcp_relay.testing fixtures (connection_registry, relay_app, ...)
pytest_plugins = ["mcp_relay.testing.fixtures"]


@pytest.fixture(autouse=True)
def _isolate_metrics() -> Iterator[None]:
    """Start every test from zeroed process-wide metrics."""
    reset_metrics()
    yield
    reset_metrics()
