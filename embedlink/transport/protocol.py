"""
Wire protocol definitions for cross-context communication.

This module defines:
- Procedure call, init and result message structure
- The readiness signal
- JSON text framing for socket transports
"""

import json
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ProtocolError

# Protocol constants
INIT_CORRELATION_ID = "__init__"
READY_SIGNAL = "__ready__"
MAX_MESSAGE_SIZE = 16 * 1024 * 1024  # 16MB max text frame


class ProcedureCall(BaseModel):
    """A single outbound request."""

    correlation_id: str = Field(alias="correlationId")
    procedure_name: str = Field(alias="procedureName", min_length=1)
    params: Any = None

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Convert to the wire mapping."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_wire(cls, data: Any) -> "ProcedureCall":
        """Parse a call received by the embedded side."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(f"Invalid procedure call: {e}") from e


class ProcedureResult(BaseModel):
    """
    A single inbound response.

    Carries either ``result`` or ``errorMessage``.
    """

    correlation_id: str = Field(alias="correlationId")
    result: Any = None
    error_message: Optional[str] = Field(default=None, alias="errorMessage")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def is_error(self) -> bool:
        return self.error_message is not None

    def to_wire(self) -> dict[str, Any]:
        """Convert to the wire mapping."""
        if self.is_error:
            return {"correlationId": self.correlation_id, "errorMessage": self.error_message}
        return {"correlationId": self.correlation_id, "result": self.result}

    @classmethod
    def success(cls, correlation_id: str, result: Any) -> "ProcedureResult":
        return cls(correlation_id=correlation_id, result=result)

    @classmethod
    def failure(cls, correlation_id: str, message: str) -> "ProcedureResult":
        return cls(correlation_id=correlation_id, error_message=message)


class ReadySignal(BaseModel):
    """Readiness signal emitted by the embedded side once it has booted."""

    type: str = READY_SIGNAL

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type}


InboundMessage = Union[ReadySignal, ProcedureResult]


def init_message(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Create the one-time init message.

    The payload keys are flattened next to the reserved correlation id.
    """
    if "correlationId" in payload:
        raise ValueError("Initialization payload cannot define correlationId")
    return {"correlationId": INIT_CORRELATION_ID, **payload}


def is_init_message(data: Any) -> bool:
    """Check whether a mapping is the init message."""
    return isinstance(data, dict) and data.get("correlationId") == INIT_CORRELATION_ID


def parse_inbound(data: Any) -> InboundMessage:
    """
    Parse a message received by the host.

    Returns:
        ReadySignal or ProcedureResult

    Raises:
        ProtocolError: If the message matches neither shape
    """
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a mapping, got {type(data).__name__}")

    if data.get("type") == READY_SIGNAL:
        return ReadySignal()

    try:
        return ProcedureResult.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid procedure result: {e}") from e


def encode_message(data: Any) -> str:
    """
    Serialize a wire mapping to a JSON text frame.

    Raises:
        ProtocolError: If the data is not JSON serializable
    """
    try:
        return json.dumps(data, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Message is not JSON serializable: {e}") from e


def decode_message(text: Union[str, bytes]) -> Any:
    """
    Deserialize a JSON text frame.

    Raises:
        ProtocolError: If the frame is too large or not valid JSON
    """
    if len(text) > MAX_MESSAGE_SIZE:
        raise ProtocolError(f"Message too large: {len(text)} bytes")
    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON message: {e}") from e
