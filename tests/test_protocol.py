"""
Tests for the wire protocol.
"""

import pytest

from embedlink.exceptions import ProtocolError
from embedlink.transport.protocol import (
    INIT_CORRELATION_ID,
    MAX_MESSAGE_SIZE,
    READY_SIGNAL,
    ProcedureCall,
    ProcedureResult,
    ReadySignal,
    decode_message,
    encode_message,
    init_message,
    is_init_message,
    parse_inbound,
)


class TestProcedureCall:
    """Tests for outbound call messages."""

    def test_wire_shape(self):
        call = ProcedureCall(correlation_id="1", procedure_name="getUserStatus", params=None)

        assert call.to_wire() == {
            "correlationId": "1",
            "procedureName": "getUserStatus",
            "params": None,
        }

    def test_from_wire(self):
        call = ProcedureCall.from_wire(
            {"correlationId": "7", "procedureName": "sign", "params": {"a": [1, 2]}}
        )

        assert call.correlation_id == "7"
        assert call.procedure_name == "sign"
        assert call.params == {"a": [1, 2]}

    def test_empty_procedure_name_rejected(self):
        with pytest.raises(ProtocolError):
            ProcedureCall.from_wire({"correlationId": "1", "procedureName": ""})


class TestInitMessage:
    """Tests for the one-time init message."""

    def test_payload_is_flattened(self):
        message = init_message({"a": 1, "clientId": "cid"})

        assert message == {"correlationId": INIT_CORRELATION_ID, "a": 1, "clientId": "cid"}
        assert is_init_message(message) is True

    def test_reserved_key_rejected(self):
        with pytest.raises(ValueError):
            init_message({"correlationId": "x"})

    def test_call_is_not_init(self):
        assert is_init_message({"correlationId": "1", "procedureName": "x"}) is False
        assert is_init_message("text") is False


class TestParseInbound:
    """Tests for parse_inbound()."""

    def test_ready_signal(self):
        message = parse_inbound({"type": READY_SIGNAL})

        assert isinstance(message, ReadySignal)

    def test_result(self):
        message = parse_inbound({"correlationId": "3", "result": {"status": "ready"}})

        assert isinstance(message, ProcedureResult)
        assert message.correlation_id == "3"
        assert message.result == {"status": "ready"}
        assert message.is_error is False

    def test_error(self):
        message = parse_inbound({"correlationId": "3", "errorMessage": "boom"})

        assert message.is_error is True
        assert message.error_message == "boom"

    def test_missing_result_is_none(self):
        message = parse_inbound({"correlationId": "3"})

        assert message.result is None
        assert message.is_error is False

    def test_extra_fields_ignored(self):
        message = parse_inbound({"correlationId": "3", "result": 1, "extra": True})

        assert message.result == 1

    @pytest.mark.parametrize(
        "data",
        [
            "not a mapping",
            None,
            [1, 2],
            {},
            {"correlationId": 5, "result": 1},
            {"type": "something-else"},
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(ProtocolError):
            parse_inbound(data)

    def test_result_to_wire(self):
        assert ProcedureResult.success("1", 2).to_wire() == {"correlationId": "1", "result": 2}
        assert ProcedureResult.failure("1", "bad").to_wire() == {
            "correlationId": "1",
            "errorMessage": "bad",
        }


class TestTextFraming:
    """Tests for JSON text framing."""

    def test_encode_decode(self):
        data = {"correlationId": "1", "result": [1, "two", None]}

        assert decode_message(encode_message(data)) == data

    def test_invalid_json(self):
        with pytest.raises(ProtocolError):
            decode_message("{not json")

    def test_oversized(self):
        with pytest.raises(ProtocolError, match="too large"):
            decode_message("x" * (MAX_MESSAGE_SIZE + 1))

    def test_unserializable(self):
        with pytest.raises(ProtocolError, match="not JSON serializable"):
            encode_message({"correlationId": "1", "params": {1, 2}})
