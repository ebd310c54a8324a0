"""MCP Relay: Model Context Protocol over HTTP with Server-Sent Events.

Clients open a long-lived SSE stream, then POST JSON-RPC 2.0 messages tagged
with the stream's connection id. Replies are pushed back over the stream.

Example:
    >>> from mcp_relay.transport.server import create_app
    >>> app = create_app()
    >>> # Run with: uvicorn mcp_relay.transport.server:app --port 8000
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
