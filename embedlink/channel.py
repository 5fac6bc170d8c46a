"""
Cross-context RPC channel.

This module provides:
- Channel: request/response calls into one embedded frame
- ChannelState: the channel lifecycle
- ContextRegistry: process-wide registry of live context identities
- call_with_retry: opt-in caller-side retry on timeout

A channel owns one frame. Once the frame signals readiness, the channel sends
the initialization payload exactly once and then releases calls that were
queued while it was loading. Every call carries a correlation id; responses
are matched by id alone, so they may arrive in any order.

All work runs on the event loop that attached the channel: bus deliveries and
timers are loop callbacks and never run concurrently, so the pending-call
table and the lifecycle state need no lock.
"""

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .config import EmbedLinkConfig
from .exceptions import (
    CallTimeoutError,
    ChannelClosedError,
    ChannelError,
    DuplicateContextError,
    ProtocolError,
    RemoteProcedureError,
)
from .link import origin_of
from .transport.bus import MessageBus, MessageEvent, default_bus
from .transport.frame import Container, Frame, FrameFactory, WebSocketFrame
from .transport.protocol import (
    ProcedureCall,
    ProcedureResult,
    ReadySignal,
    encode_message,
    init_message,
    parse_inbound,
)

logger = logging.getLogger(__name__)

Initializer = Callable[[], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]
ReadyHook = Callable[[], Union[None, Awaitable[None]]]


class ChannelState(Enum):
    """Lifecycle of a channel."""

    UNATTACHED = auto()
    LOADING = auto()
    READY = auto()
    CLOSED = auto()


_TRANSITIONS = {
    ChannelState.UNATTACHED: {ChannelState.LOADING, ChannelState.CLOSED},
    ChannelState.LOADING: {ChannelState.READY, ChannelState.CLOSED},
    ChannelState.READY: {ChannelState.CLOSED},
    ChannelState.CLOSED: set(),
}


@dataclass
class PendingCall:
    """An outstanding call awaiting its response."""

    correlation_id: str
    procedure_name: str
    future: asyncio.Future
    timeout: float
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class ContextRegistry:
    """
    Live channels keyed by context identity.

    Used for routing and collision checks only; each channel keeps its own
    listener and pending table.
    """

    def __init__(self) -> None:
        self._channels: dict[str, "Channel"] = {}

    def register(self, channel: "Channel") -> None:
        """
        Claim a context identity.

        Raises:
            DuplicateContextError: If another live channel holds it
        """
        existing = self._channels.get(channel.context_id)
        if existing is not None and existing is not channel and not existing.is_closed:
            raise DuplicateContextError(channel.context_id)
        self._channels[channel.context_id] = channel

    def unregister(self, channel: "Channel") -> None:
        """Release a context identity held by this channel."""
        if self._channels.get(channel.context_id) is channel:
            del self._channels[channel.context_id]

    def get(self, context_id: str) -> Optional["Channel"]:
        return self._channels.get(context_id)

    def __contains__(self, context_id: object) -> bool:
        return context_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)


default_registry = ContextRegistry()


class Channel:
    """
    Request/response channel to one embedded context.

    Usage:
        channel = Channel(
            "wallet-manager",
            create_link(client_id, "/embedded"),
            initializer=lambda: {"clientId": client_id},
        )
        async with channel:
            status = await channel.call("getUserStatus")

    Subclasses may override init_variables() instead of passing an
    initializer.
    """

    def __init__(
        self,
        context_id: str,
        target_address: str,
        *,
        initializer: Optional[Initializer] = None,
        mount_point: Optional[Container] = None,
        on_ready: Optional[ReadyHook] = None,
        styles: Optional[dict[str, Any]] = None,
        frame_factory: Optional[FrameFactory] = None,
        bus: Optional[MessageBus] = None,
        registry: Optional[ContextRegistry] = None,
        config: Optional[EmbedLinkConfig] = None,
        call_timeout: Optional[float] = None,
    ) -> None:
        """
        Create a channel. Nothing is loaded until attach().

        Args:
            context_id: Identity of the frame, unique among live channels
            target_address: Address the frame loads
            initializer: Supplier of the initialization payload
            mount_point: Container the frame is attached under, None for headless
            on_ready: Hook fired once the channel is ready
            styles: Styling for the mounted frame, passed through untouched
            frame_factory: Creates the frame, WebSocketFrame by default
            bus: Message bus, the process-wide bus by default
            registry: Context registry, the process-wide registry by default
            config: Configuration
            call_timeout: Default per-call timeout in seconds
        """
        if not context_id:
            raise ValueError("context_id cannot be empty")

        self.context_id = context_id
        self.target_address = target_address
        self.origin = origin_of(target_address)
        self.mount_point = mount_point
        self.styles = styles
        self.config = config or EmbedLinkConfig()
        self.call_timeout = call_timeout if call_timeout is not None else self.config.call_timeout
        if self.call_timeout <= 0:
            raise ValueError("call_timeout must be positive")

        self._initializer = initializer
        self._on_ready = on_ready
        self._frame_factory = frame_factory or WebSocketFrame
        self._bus = bus if bus is not None else default_bus
        self._registry = registry if registry is not None else default_registry

        self.state = ChannelState.UNATTACHED
        self.frame: Optional[Frame] = None

        self._pending: dict[str, PendingCall] = {}
        self._outbound_queue: Optional[list[dict[str, Any]]] = []  # None once flushed
        self._ids = itertools.count(1)
        self._handshake_settled = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._close_reason: Optional[str] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self.state == ChannelState.READY

    @property
    def is_closed(self) -> bool:
        return self.state == ChannelState.CLOSED

    @property
    def pending_count(self) -> int:
        """Number of calls awaiting a response."""
        return len(self._pending)

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    @property
    def queued_count(self) -> int:
        """Number of messages held back until the handshake completes."""
        return len(self._outbound_queue or [])

    def _transition(self, new_state: ChannelState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ChannelError(
                f"Invalid transition {self.state.name} -> {new_state.name}",
                self.context_id,
            )
        logger.debug(f"Channel {self.context_id}: {self.state.name} -> {new_state.name}")
        self.state = new_state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init_variables(self) -> Mapping[str, Any]:
        """Initialization payload used when no initializer was given."""
        return {}

    def attach(self) -> Frame:
        """
        Create the frame, mount it and start loading.

        Must be called from the event loop the channel will run on.

        Returns:
            The channel's frame

        Raises:
            ChannelClosedError: If the channel was closed
            DuplicateContextError: If the context id is taken
        """
        if self.state == ChannelState.CLOSED:
            raise ChannelClosedError(self._closed_message(), self.context_id)
        if self.frame is not None:
            return self.frame

        asyncio.get_running_loop()  # RuntimeError outside a running loop
        self._registry.register(self)
        try:
            frame = self._frame_factory(
                self.context_id, self.target_address, self._bus, styles=self.styles
            )
        except Exception:
            self._registry.unregister(self)
            raise

        frame.on_unload = self._on_frame_unloaded
        if self.mount_point is not None:
            self.mount_point.append_child(frame)
        self.frame = frame

        self._bus.add_listener(self._on_message)
        self._transition(ChannelState.LOADING)
        self._spawn(self._load())

        logger.info(f"Channel {self.context_id} loading {self.target_address}")
        return frame

    async def _load(self) -> None:
        try:
            await self.frame.load()
        except Exception as e:
            logger.error(f"Channel {self.context_id} failed to load {self.target_address}: {e}")
            await self._shutdown(f"frame failed to load: {e}")

    async def wait_until_ready(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the handshake to complete.

        Raises:
            ChannelClosedError: If the channel closes first
            CallTimeoutError: If not ready within timeout
        """
        if self.state == ChannelState.UNATTACHED:
            self.attach()

        try:
            await asyncio.wait_for(self._handshake_settled.wait(), timeout)
        except asyncio.TimeoutError:
            raise CallTimeoutError(
                f"Channel {self.context_id} not ready after {timeout}s", timeout
            )

        if self.state == ChannelState.CLOSED:
            raise ChannelClosedError(self._closed_message(), self.context_id)

    async def open(self) -> "Channel":
        """Attach and wait for readiness within the configured load timeout."""
        await self.wait_until_ready(self.config.load_timeout)
        return self

    async def close(self, reason: Optional[str] = None) -> None:
        """
        Tear the channel down.

        Detaches the listener, removes the frame and rejects every pending
        call with ChannelClosedError. Safe to call more than once.
        """
        await self._shutdown(reason)

    async def _shutdown(self, reason: Optional[str] = None) -> None:
        if self.state == ChannelState.CLOSED:
            return

        self._transition(ChannelState.CLOSED)
        self._close_reason = reason
        self._bus.remove_listener(self._on_message)
        self._registry.unregister(self)

        error_message = self._closed_message()
        pending, self._pending = self._pending, {}
        for call in pending.values():
            call.cancel_timer()
            if not call.future.done():
                call.future.set_exception(ChannelClosedError(error_message, self.context_id))
        self._outbound_queue = None
        self._handshake_settled.set()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        if self.frame is not None:
            await self.frame.remove()

        if pending:
            logger.info(f"Channel {self.context_id} closed, rejected {len(pending)} pending calls")
        else:
            logger.info(f"Channel {self.context_id} closed")

    def _closed_message(self) -> str:
        message = f"Channel {self.context_id} is closed"
        if self._close_reason:
            message += f": {self._close_reason}"
        return message

    def _on_frame_unloaded(self, error: Optional[BaseException]) -> None:
        if self.state == ChannelState.CLOSED:
            return
        logger.warning(f"Embedded context {self.context_id} went away: {error}")
        self._spawn(self._shutdown("embedded context unloaded"))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_message(self, event: MessageEvent) -> None:
        """Bus listener: filter, parse and route one inbound message."""
        if self.state == ChannelState.CLOSED:
            return

        if event.source is not self.frame:
            return
        if event.origin != self.origin:
            logger.debug(f"Channel {self.context_id}: dropping message from origin {event.origin}")
            return

        try:
            message = parse_inbound(event.data)
        except ProtocolError as e:
            logger.debug(f"Channel {self.context_id}: dropping malformed message: {e}")
            return

        if isinstance(message, ReadySignal):
            self._on_ready_signal()
        else:
            self._settle(message)

    def _on_ready_signal(self) -> None:
        if self.state != ChannelState.LOADING:
            logger.debug(f"Channel {self.context_id}: ignoring repeated readiness signal")
            return

        self._transition(ChannelState.READY)
        self._spawn(self._handshake())

    async def _handshake(self) -> None:
        try:
            payload = await self._compute_init_payload()
            init = init_message(payload)
            encode_message(init)
        except Exception as e:
            logger.error(f"Channel {self.context_id} initializer failed: {e}")
            await self._shutdown(f"initializer failed: {e}")
            return

        if self.state != ChannelState.READY:
            return

        self.frame.post_message(init, self.origin)
        queued, self._outbound_queue = self._outbound_queue or [], None
        for message in queued:
            self.frame.post_message(message, self.origin)

        logger.info(f"Channel {self.context_id} ready, flushed {len(queued)} queued calls")

        if self._on_ready is not None:
            try:
                result = self._on_ready()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Channel {self.context_id} on_ready hook failed")

        self._handshake_settled.set()

    async def _compute_init_payload(self) -> dict[str, Any]:
        initializer = self._initializer or self.init_variables
        result = initializer()
        if inspect.isawaitable(result):
            result = await result
        return dict(result or {})

    def _settle(self, result: ProcedureResult) -> None:
        call = self._pending.pop(result.correlation_id, None)
        if call is None:
            logger.debug(
                f"Channel {self.context_id}: no pending call for {result.correlation_id}"
            )
            return

        call.cancel_timer()
        if call.future.done():
            return
        if result.is_error:
            call.future.set_exception(
                RemoteProcedureError(result.error_message, call.procedure_name)
            )
        else:
            call.future.set_result(result.result)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def call(
        self,
        procedure_name: str,
        params: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Invoke a named procedure in the embedded context.

        Args:
            procedure_name: Name of the remote procedure
            params: Serializable parameters
            timeout: Seconds to wait, the channel default when omitted

        Returns:
            The ``result`` of the matching response

        Raises:
            RemoteProcedureError: If the embedded side reported an error
            CallTimeoutError: If no response arrived in time
            ChannelClosedError: If the channel is or becomes closed
            ProtocolError: If params are not JSON serializable
        """
        if not procedure_name:
            raise ValueError("procedure_name cannot be empty")
        if self.state == ChannelState.CLOSED:
            raise ChannelClosedError(self._closed_message(), self.context_id)

        timeout = self.call_timeout if timeout is None else timeout
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        encode_message(params)

        if self.state == ChannelState.UNATTACHED:
            self.attach()

        loop = asyncio.get_running_loop()
        correlation_id = str(next(self._ids))
        call = PendingCall(correlation_id, procedure_name, loop.create_future(), timeout)
        call.timer = loop.call_later(timeout, self._expire, correlation_id)
        self._pending[correlation_id] = call

        message = ProcedureCall(
            correlation_id=correlation_id,
            procedure_name=procedure_name,
            params=params,
        ).to_wire()
        self._send(message)

        try:
            return await call.future
        finally:
            self._discard(correlation_id)

    def _send(self, message: dict[str, Any]) -> None:
        if self._outbound_queue is not None:
            self._outbound_queue.append(message)
        else:
            self.frame.post_message(message, self.origin)

    def _expire(self, correlation_id: str) -> None:
        call = self._pending.pop(correlation_id, None)
        if call is None or call.future.done():
            return
        call.timer = None
        logger.warning(
            f"Channel {self.context_id}: {call.procedure_name} timed out after {call.timeout}s"
        )
        call.future.set_exception(
            CallTimeoutError(
                f"Call to {call.procedure_name} timed out after {call.timeout}s",
                call.timeout,
                call.procedure_name,
            )
        )

    def _discard(self, correlation_id: str) -> None:
        call = self._pending.pop(correlation_id, None)
        if call is not None:
            call.cancel_timer()

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def __aenter__(self) -> "Channel":
        try:
            return await self.open()
        except BaseException:
            await self.close()
            raise

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.context_id}, {self.state.name})"


async def call_with_retry(
    channel: Channel,
    procedure_name: str,
    params: Any = None,
    attempts: Optional[int] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    Call a procedure, retrying only when the call times out.

    Args:
        channel: Channel to call through
        procedure_name: Name of the remote procedure
        params: Serializable parameters
        attempts: Extra attempts after the first, config.retry_attempts by default
        timeout: Per-attempt timeout

    Returns:
        The procedure result
    """
    retries = channel.config.retry_attempts if attempts is None else attempts
    for attempt in range(retries + 1):
        try:
            return await channel.call(procedure_name, params, timeout=timeout)
        except CallTimeoutError:
            if attempt == retries:
                raise
            logger.warning(f"Retrying {procedure_name} ({attempt + 1}/{retries})")
