"""
Cross-context transport: message bus, wire protocol and embedded frames.
"""

from .bus import MessageBus, MessageEvent, default_bus
from .frame import Container, Frame, FrameState, LocalFrame, WebSocketFrame
from .guest import EmbeddedRuntime
from .protocol import (
    INIT_CORRELATION_ID,
    READY_SIGNAL,
    ProcedureCall,
    ProcedureResult,
    ReadySignal,
    parse_inbound,
)
from .server import EmbeddedServer, serve_embedded

__all__ = [
    "MessageBus",
    "MessageEvent",
    "default_bus",
    "Container",
    "Frame",
    "FrameState",
    "LocalFrame",
    "WebSocketFrame",
    "EmbeddedRuntime",
    "EmbeddedServer",
    "serve_embedded",
    "INIT_CORRELATION_ID",
    "READY_SIGNAL",
    "ProcedureCall",
    "ProcedureResult",
    "ReadySignal",
    "parse_inbound",
]
