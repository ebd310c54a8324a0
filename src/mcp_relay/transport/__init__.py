"""Transport layer: JSON-RPC routing, SSE sessions and the message relay.

Importing ``mcp_relay.transport.server`` builds a default application;
the components below can be composed without it.
"""

from mcp_relay.transport.jsonrpc import (
    JsonRpcError,
    JsonRpcErrorResponse,
    JsonRpcRequest,
    JsonRpcResponse,
    decode_reply,
    encode_reply,
)
from mcp_relay.transport.procedures import ProcedureTable, rpc_method
from mcp_relay.transport.registry import ConnectionRegistry
from mcp_relay.transport.relay import MessageRelay, RelayAck
from mcp_relay.transport.router import JsonRpcRouter
from mcp_relay.transport.session import StreamSession
from mcp_relay.transport.sse import OutboundEvent, SseDecoder, decode_frames, encode_event

__all__ = [
    "ConnectionRegistry",
    "JsonRpcError",
    "JsonRpcErrorResponse",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "JsonRpcRouter",
    "MessageRelay",
    "OutboundEvent",
    "ProcedureTable",
    "RelayAck",
    "SseDecoder",
    "StreamSession",
    "decode_frames",
    "decode_reply",
    "encode_event",
    "encode_reply",
    "rpc_method",
]
