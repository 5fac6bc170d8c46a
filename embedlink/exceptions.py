"""
EmbedLink Exceptions.

All channel exceptions inherit from EmbedLinkError for easy catching.
"""

from typing import Optional


class EmbedLinkError(Exception):
    """Base exception for all EmbedLink errors."""

    def __init__(self, message: str, code: str = "EMBEDLINK_ERROR"):
        super().__init__(message)
        self.code = code
        self.message = message


class ChannelError(EmbedLinkError):
    """Channel misuse or lifecycle error."""

    def __init__(self, message: str, context_id: Optional[str] = None):
        super().__init__(message, "CHANNEL_ERROR")
        self.context_id = context_id


class DuplicateContextError(ChannelError):
    """Another live channel already owns the context identity."""

    def __init__(self, context_id: str):
        super().__init__(f"Context id already in use: {context_id}", context_id)
        self.code = "DUPLICATE_CONTEXT"


class ChannelClosedError(EmbedLinkError):
    """Channel was torn down while the call was outstanding."""

    def __init__(self, message: str, context_id: Optional[str] = None):
        super().__init__(message, "CHANNEL_CLOSED")
        self.context_id = context_id


class RemoteProcedureError(EmbedLinkError):
    """The embedded side reported a failure for a procedure call."""

    def __init__(self, message: str, procedure_name: Optional[str] = None):
        super().__init__(message, "REMOTE_ERROR")
        self.procedure_name = procedure_name


class CallTimeoutError(EmbedLinkError):
    """No response arrived within the call timeout."""

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        procedure_name: Optional[str] = None,
    ):
        super().__init__(message, "TIMEOUT_ERROR")
        self.timeout = timeout
        self.procedure_name = procedure_name


class ProtocolError(EmbedLinkError):
    """Inbound message does not match the wire protocol."""

    def __init__(self, message: str):
        super().__init__(message, "PROTOCOL_ERROR")
