"""FastAPI application for the relay.

This module builds the HTTP surface:
- GET  {prefix}/sse       opens a stream (handshake, heartbeats, replies)
- POST {prefix}/message   relays a JSON-RPC body to a stream by connection id
- POST {prefix}/json-rpc  answers a JSON-RPC body directly in the response
- GET  {prefix}/metrics   Prometheus text metrics
- GET  /health, /ready    liveness and readiness checks

The lifespan starts the idle-connection sweeper and, on shutdown, stops it,
closes every open stream and waits for in-flight relay deliveries.

Example:
    >>> from mcp_relay.transport.server import create_app
    >>> app = create_app()
    >>> # Run with: uvicorn mcp_relay.transport.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse

from mcp_relay.capabilities.catalog import CapabilityCatalog
from mcp_relay.config import RelaySettings
from mcp_relay.errors import ConnectionExpiredError, ConnectionNotFoundError, ParseError
from mcp_relay.events import EventDispatcher
from mcp_relay.observability import get_logger, get_metrics, is_debug_mode
from mcp_relay.procedures import create_default_table
from mcp_relay.transport.jsonrpc import encode_reply, reply_to_dict
from mcp_relay.transport.procedures import ProcedureTable
from mcp_relay.transport.registry import ConnectionRegistry
from mcp_relay.transport.relay import MessageRelay
from mcp_relay.transport.router import JsonRpcRouter, build_error_reply
from mcp_relay.transport.session import StreamSession
from mcp_relay.transport.sse import SSE_HEADERS, SSE_MEDIA_TYPE

logger = get_logger(__name__)

CONNECTION_ID_HEADER = "X-MCP-Connection-Id"
# Query parameters accepted in place of the header
CONNECTION_ID_PARAMS = ("connection_id", "sessionId")

JSON_MEDIA_TYPE = "application/json"
METRICS_MEDIA_TYPE = "application/openmetrics-text; version=1.0.0; charset=utf-8"


def _connection_id_from(request: Request) -> str | None:
    connection_id = request.headers.get(CONNECTION_ID_HEADER)
    if connection_id:
        return connection_id
    for name in CONNECTION_ID_PARAMS:
        value = request.query_params.get(name)
        if value:
            return value
    return None


async def _read_body(request: Request, max_size: int) -> bytes:
    """Read the request body, rejecting anything above ``max_size`` bytes.

    Raises:
        HTTPException: 413 if the declared or actual size exceeds the limit
    """
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            declared = int(content_length)
        except ValueError:
            logger.debug("mcp.request.invalid_content_length", content_length=content_length)
        else:
            if declared > max_size:
                logger.warning(
                    "mcp.request.size_exceeded", content_length=declared, max_size=max_size
                )
                raise HTTPException(
                    status_code=413,
                    detail=f"Request size ({declared} bytes) exceeds maximum ({max_size} bytes)",
                )
    body = await request.body()
    if len(body) > max_size:
        logger.warning("mcp.request.size_exceeded", content_length=len(body), max_size=max_size)
        raise HTTPException(
            status_code=413,
            detail=f"Request size ({len(body)} bytes) exceeds maximum ({max_size} bytes)",
        )
    return body


def _relay_error(status_code: int, error: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def create_app(
    settings: RelaySettings | None = None,
    table: ProcedureTable | None = None,
    registry: ConnectionRegistry | None = None,
    events: EventDispatcher | None = None,
    catalog: CapabilityCatalog | None = None,
) -> FastAPI:
    """Create the relay application.

    Args:
        settings: Relay settings; read from ``MCP_*`` env vars when None
        table: Procedure table; the built-in procedures when None
        registry: Connection registry; a fresh one when None
        events: Event dispatcher shared by router, sessions and procedures
        catalog: Capabilities served by the built-in procedures

    Returns:
        Configured FastAPI application. Components are exposed on
        ``app.state`` (settings, registry, router, relay, table, catalog, events).
    """
    settings = settings or RelaySettings.from_env()
    events = events if events is not None else EventDispatcher()
    catalog = catalog if catalog is not None else CapabilityCatalog()
    table = table if table is not None else create_default_table(settings, catalog, events)
    registry = (
        registry
        if registry is not None
        else ConnectionRegistry(default_heartbeat_interval=settings.heartbeat_interval)
    )
    router = JsonRpcRouter(table, events=events)
    relay = MessageRelay(registry, router, ttl=settings.connection_ttl)

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> Any:
        registry.start_sweeper(settings.sweep_interval, settings.connection_ttl)
        logger.info(
            "mcp.server.started",
            server_name=settings.server_name,
            route_prefix=settings.route_prefix,
            procedures=table.list_procedures(),
        )
        try:
            yield
        finally:
            await registry.stop_sweeper()
            closed = registry.close_all("shutdown")
            await relay.drain()
            logger.info("mcp.server.stopped", closed_connections=closed)

    # Swagger UI (/docs) and ReDoc (/redoc) only when MCP_DEBUG=true
    app = FastAPI(
        title=settings.server_name,
        description="Model Context Protocol over HTTP with Server-Sent Events",
        version=settings.server_version,
        docs_url="/docs" if is_debug_mode() else None,
        redoc_url="/redoc" if is_debug_mode() else None,
        openapi_url="/openapi.json" if is_debug_mode() else None,
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.router = router
    app.state.relay = relay
    app.state.table = table
    app.state.catalog = catalog
    app.state.events = events

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness check: always OK if the process is running."""
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """Readiness check: OK once procedures are registered."""
        return JSONResponse(
            status_code=200,
            content={"status": "ok", "connections": len(registry)},
        )

    @app.get(settings.metrics_path)
    async def get_metrics_endpoint() -> PlainTextResponse:
        """Return Prometheus-compatible metrics."""
        return PlainTextResponse(
            content=get_metrics().export_prometheus(),
            media_type=METRICS_MEDIA_TYPE,
        )

    @app.get(settings.sse_path)
    async def open_stream(request: Request) -> StreamingResponse:
        """Open a stream: handshake first, then replies and heartbeats."""
        connection = registry.create(heartbeat_interval=settings.heartbeat_interval)
        session = StreamSession(
            connection.id,
            registry,
            disconnect_check=request.is_disconnected,
            events=events,
            endpoint=f"{settings.message_path}?connection_id={connection.id}",
            retry_ms=settings.sse_retry_ms,
            max_duration=settings.max_connection_duration,
        )
        await session.open()
        return StreamingResponse(
            session.stream(),
            media_type=SSE_MEDIA_TYPE,
            headers={**SSE_HEADERS, CONNECTION_ID_HEADER: connection.id},
        )

    @app.post(settings.message_path)
    async def relay_message(request: Request) -> JSONResponse:
        """Relay a JSON-RPC body to the stream owning the connection id.

        Returns 200 with an ack once the body is scheduled; the reply itself
        travels over the stream.
        """
        connection_id = _connection_id_from(request)
        if connection_id is None:
            return _relay_error(
                400,
                {
                    "code": "mcp:connection/missing_id",
                    "message": (
                        f"Connection id required: send the {CONNECTION_ID_HEADER} header "
                        "or a connection_id query parameter"
                    ),
                    "details": {},
                },
            )
        body = await _read_body(request, settings.max_request_size)
        try:
            ack = await relay.deliver(connection_id, body)
        except (ConnectionNotFoundError, ConnectionExpiredError) as e:
            return _relay_error(404, e.to_dict())
        return JSONResponse(status_code=200, content=ack.model_dump())

    @app.post(settings.json_rpc_path)
    async def handle_json_rpc(request: Request) -> Response:
        """Answer a JSON-RPC body (single or batch) in the HTTP response."""
        content_type = request.headers.get("content-type", "")
        if JSON_MEDIA_TYPE not in content_type.lower():
            reply = build_error_reply(
                ParseError(f"unsupported content type: {content_type or 'none'}"), None
            )
            return JSONResponse(status_code=415, content=reply_to_dict(reply))
        body = await _read_body(request, settings.max_request_size)
        reply = await router.handle(body)
        if reply is None:
            return Response(status_code=204)
        return Response(content=encode_reply(reply), media_type=JSON_MEDIA_TYPE)

    return app


# Default app instance for direct uvicorn execution:
#   uvicorn mcp_relay.transport.server:app --host 0.0.0.0 --port 8000
app = create_app()
