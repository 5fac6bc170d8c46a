"""
EmbedLink - request/response channels into embedded contexts.

A host application talks to code running in an isolated embedded frame it
does not control. EmbedLink performs the readiness handshake, ships the
one-time initialization variables and multiplexes correlated procedure
calls over an unordered broadcast message bus.

Quick Start:
    from embedlink import Channel, create_link

    channel = Channel(
        "wallet-manager",
        create_link("my-client-id", "/sdk/2022-08-12/embedded-wallet"),
        initializer=lambda: {"clientId": "my-client-id"},
    )
    async with channel:
        status = await channel.call("getUserStatus")
"""

from .channel import (
    Channel,
    ChannelState,
    ContextRegistry,
    call_with_retry,
    default_registry,
)
from .communicators import EmbeddedWalletChannel, EmbeddedWalletUiChannel
from .config import EmbedLinkConfig
from .exceptions import (
    EmbedLinkError,
    CallTimeoutError,
    ChannelClosedError,
    ChannelError,
    DuplicateContextError,
    ProtocolError,
    RemoteProcedureError,
)
from .link import create_link, origin_of
from .storage import ClientStorage

__version__ = "0.1.0"

__all__ = [
    # Core
    "Channel",
    "ChannelState",
    "ContextRegistry",
    "call_with_retry",
    "default_registry",
    "create_link",
    "origin_of",
    # Wallet
    "EmbeddedWalletChannel",
    "EmbeddedWalletUiChannel",
    "ClientStorage",
    "EmbedLinkConfig",
    # Exceptions
    "EmbedLinkError",
    "CallTimeoutError",
    "ChannelClosedError",
    "ChannelError",
    "DuplicateContextError",
    "ProtocolError",
    "RemoteProcedureError",
    # Version
    "__version__",
]
