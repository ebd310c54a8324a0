"""Tests for JSON-RPC 2.0 envelope models."""

import json

import pytest
from pydantic import ValidationError

from mcp_relay.transport.jsonrpc import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcError,
    JsonRpcErrorResponse,
    JsonRpcRequest,
    JsonRpcResponse,
    decode_reply,
    encode_reply,
    reply_to_dict,
)


class TestJsonRpcRequest:
    """Tests for JsonRpcRequest validation."""

    def test_defaults(self) -> None:
        """Version defaults to 2.0 and params to None."""
        request = JsonRpcRequest(method="server.ping", id=1)

        assert request.jsonrpc == "2.0"
        assert request.params is None
        assert not request.is_notification

    def test_notification(self) -> None:
        """A request without id is a notification."""
        assert JsonRpcRequest(method="server.log").is_notification

    def test_accepts_list_params(self) -> None:
        """Positional params are allowed."""
        request = JsonRpcRequest(method="server.log", params=["info", "hi"], id="a")

        assert request.params == ["info", "hi"]

    def test_rejects_wrong_version(self) -> None:
        """Only version 2.0 is accepted."""
        with pytest.raises(ValidationError):
            JsonRpcRequest.model_validate({"jsonrpc": "1.0", "method": "server.ping"})

    def test_rejects_non_string_method(self) -> None:
        """Method must be a string."""
        with pytest.raises(ValidationError):
            JsonRpcRequest.model_validate({"jsonrpc": "2.0", "method": 5, "id": 1})

    def test_rejects_scalar_params(self) -> None:
        """Params must be an object or array."""
        with pytest.raises(ValidationError):
            JsonRpcRequest.model_validate({"jsonrpc": "2.0", "method": "a.b", "params": 3})

    @pytest.mark.parametrize("bad_id", [True, False, {"x": 1}, [1]])
    def test_rejects_invalid_ids(self, bad_id: object) -> None:
        """Ids must be strings, numbers or null; bools are not numbers."""
        with pytest.raises(ValidationError):
            JsonRpcRequest.model_validate({"jsonrpc": "2.0", "method": "a.b", "id": bad_id})

    @pytest.mark.parametrize("request_id", [7, 1.5, -2.25, "abc"])
    def test_accepts_any_number_or_string_id(self, request_id: object) -> None:
        """Fractional ids are discouraged but valid JSON-RPC numbers."""
        request = JsonRpcRequest.model_validate(
            {"jsonrpc": "2.0", "method": "a.b", "id": request_id}
        )

        assert request.id == request_id
        assert type(request.id) is type(request_id)
        assert not request.is_notification


class TestReplies:
    """Tests for reply serialization."""

    def test_encode_success_is_compact(self) -> None:
        """Successful replies serialize without whitespace."""
        reply = JsonRpcResponse(result={"status": "ok"}, id=1)

        assert encode_reply(reply) == '{"jsonrpc":"2.0","result":{"status":"ok"},"id":1}'

    def test_error_without_data_omits_field(self) -> None:
        """An empty error.data is dropped from the wire form."""
        reply = JsonRpcErrorResponse(error=JsonRpcError.from_code(METHOD_NOT_FOUND), id="x")

        assert reply_to_dict(reply) == {
            "jsonrpc": "2.0",
            "error": {"code": -32601, "message": "Method not found"},
            "id": "x",
        }

    def test_error_with_data_keeps_field(self) -> None:
        """error.data is kept when present."""
        error = JsonRpcError.from_code(INVALID_PARAMS, data={"errors": ["bad"]}, message="Nope")
        payload = reply_to_dict(JsonRpcErrorResponse(error=error, id=None))

        assert payload["error"] == {"code": -32602, "message": "Nope", "data": {"errors": ["bad"]}}
        assert payload["id"] is None

    def test_unknown_code_message(self) -> None:
        """Unknown codes get a generic message."""
        assert JsonRpcError.from_code(-1).message == "Unknown error"

    def test_encode_batch(self) -> None:
        """A batch encodes as a JSON array in order."""
        replies = [JsonRpcResponse(result=1, id=1), JsonRpcResponse(result=2, id=2)]

        assert [item["id"] for item in json.loads(encode_reply(replies))] == [1, 2]

    def test_decode_reply(self) -> None:
        """decode_reply picks the model from the payload shape."""
        decoded = decode_reply(
            '[{"jsonrpc":"2.0","result":true,"id":1},'
            '{"jsonrpc":"2.0","error":{"code":-32601,"message":"Method not found"},"id":2}]'
        )

        assert isinstance(decoded, list)
        assert isinstance(decoded[0], JsonRpcResponse)
        assert isinstance(decoded[1], JsonRpcErrorResponse)
        assert decoded[1].error.code == METHOD_NOT_FOUND
