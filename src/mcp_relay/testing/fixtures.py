"""Pytest fixtures for relay tests.

Load with ``pytest_plugins = ["mcp_relay.testing.fixtures"]``.

Fixtures:
    manual_clock: ManualClock for deterministic idle/expiry checks.
    connection_registry: ConnectionRegistry driven by ``manual_clock``.
    capability_catalog: Empty CapabilityCatalog.
    relay_settings: RelaySettings with short intervals for tests.
    procedure_table: Built-in procedures over ``capability_catalog``.
    json_rpc_router: JsonRpcRouter over ``procedure_table``.
    relay_app: FastAPI application wired from the fixtures above.

Context managers:
    relay_test_client(): TestClient for a relay app, lifespan included.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.config import RelaySettings
from mcp_relay.events import EventDispatcher
from mcp_relay.procedures import create_default_table
from mcp_relay.testing.mocks import ManualClock
from mcp_relay.transport.procedures import ProcedureTable
from mcp_relay.transport.registry import ConnectionRegistry
from mcp_relay.transport.router import JsonRpcRouter
from mcp_relay.transport.server import create_app

TEST_HEARTBEAT_INTERVAL = 1.0


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def connection_registry(manual_clock: ManualClock) -> ConnectionRegistry:
    """Registry whose notion of time only advances through ``manual_clock``."""
    return ConnectionRegistry(
        clock=manual_clock, default_heartbeat_interval=TEST_HEARTBEAT_INTERVAL
    )


@pytest.fixture
def capability_catalog() -> CapabilityCatalog:
    return CapabilityCatalog()


@pytest.fixture
def event_dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def relay_settings() -> RelaySettings:
    """Settings with a 1s heartbeat and a 2s stream lifetime cap."""
    return RelaySettings(
        server_name="Test Relay",
        server_version="0.0.0-test",
        heartbeat_interval=TEST_HEARTBEAT_INTERVAL,
        max_connection_duration=2.0,
    )


@pytest.fixture
def procedure_table(
    relay_settings: RelaySettings,
    capability_catalog: CapabilityCatalog,
    event_dispatcher: EventDispatcher,
) -> ProcedureTable:
    return create_default_table(relay_settings, capability_catalog, event_dispatcher)


@pytest.fixture
def json_rpc_router(
    procedure_table: ProcedureTable, event_dispatcher: EventDispatcher
) -> JsonRpcRouter:
    return JsonRpcRouter(procedure_table, events=event_dispatcher)


@pytest.fixture
def relay_app(
    relay_settings: RelaySettings,
    procedure_table: ProcedureTable,
    event_dispatcher: EventDispatcher,
    capability_catalog: CapabilityCatalog,
) -> FastAPI:
    """Relay application sharing the fixtures' table, catalog and events."""
    return create_app(
        relay_settings,
        table=procedure_table,
        events=event_dispatcher,
        catalog=capability_catalog,
    )


@contextmanager
def relay_test_client(app: FastAPI | None = None) -> Iterator[TestClient]:
    """TestClient for ``app`` (a default app when None) with lifespan running.

    Example:
        >>> with relay_test_client(app) as client:
        ...     client.get("/health").json()
        {'status': 'ok'}
    """
    with TestClient(app or create_app(RelaySettings())) as client:
        yield client


__all__ = [
    "TEST_HEARTBEAT_INTERVAL",
    "capability_catalog",
    "connection_registry",
    "event_dispatcher",
    "json_rpc_router",
    "manual_clock",
    "procedure_table",
    "relay_app",
    "relay_settings",
    "relay_test_client",
]
