"""
Embedded frames and their mounting points.

This module provides:
- Container: DOM-like node frames are attached under
- Frame: an embedded context loaded from a target address
- LocalFrame: embedded runtime hosted in-process
- WebSocketFrame: embedded runtime reached over a WebSocket at the address

A frame talks to its host only through the message bus: what the embedded
side sends is broadcast with the frame as source and the address origin as
origin; what the host posts reaches only the frame it was posted to.
"""

import asyncio
import copy
import logging
from enum import Enum, auto
from typing import Any, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import websockets

from ..exceptions import ProtocolError
from ..link import origin_of
from .bus import MessageBus
from .guest import EmbeddedRuntime
from .protocol import decode_message, encode_message

logger = logging.getLogger(__name__)


class FrameState(Enum):
    """Load state of a frame."""

    CREATED = auto()
    LOADING = auto()
    LOADED = auto()
    REMOVED = auto()


class Container:
    """A mounting point for frames."""

    def __init__(self, id: str = "body") -> None:
        self.id = id
        self.children: list["Frame"] = []

    def append_child(self, frame: "Frame") -> None:
        """Attach a frame under this node."""
        if frame.parent is not None and frame.parent is not self:
            frame.parent.remove_child(frame)
        if frame not in self.children:
            self.children.append(frame)
        frame.parent = self

    def remove_child(self, frame: "Frame") -> None:
        """Detach a frame from this node."""
        if frame in self.children:
            self.children.remove(frame)
        if frame.parent is self:
            frame.parent = None

    def get_element_by_id(self, frame_id: str) -> Optional["Frame"]:
        for child in self.children:
            if child.id == frame_id:
                return child
        return None

    def __contains__(self, frame: object) -> bool:
        return frame in self.children

    def __len__(self) -> int:
        return len(self.children)

    def __repr__(self) -> str:
        return f"Container({self.id}, {len(self.children)} children)"


class Frame:
    """
    Base class for embedded contexts.

    Subclasses implement _load(), _deliver() and _teardown().
    """

    def __init__(
        self,
        frame_id: str,
        src: str,
        bus: MessageBus,
        styles: Optional[dict[str, Any]] = None,
    ) -> None:
        self.id = frame_id
        self.src = src
        self.origin = origin_of(src)
        self.bus = bus
        self.styles: dict[str, Any] = dict(styles or {})
        self.parent: Optional[Container] = None
        self.state = FrameState.CREATED

        # Called when the embedded side goes away on its own
        self.on_unload: Optional[Callable[[Optional[BaseException]], None]] = None

    @property
    def is_mounted(self) -> bool:
        return self.parent is not None

    @property
    def is_loaded(self) -> bool:
        return self.state == FrameState.LOADED

    async def load(self) -> None:
        """Start the embedded context."""
        if self.state != FrameState.CREATED:
            return
        self.state = FrameState.LOADING
        await self._load()
        if self.state == FrameState.LOADING:
            self.state = FrameState.LOADED
            logger.debug(f"Frame {self.id} loaded from {self.src}")

    def post_message(self, data: Any, target_origin: str = "*") -> None:
        """
        Send a message into the frame.

        Fire-and-forget: messages for a removed frame, or whose target
        origin does not match the frame's origin, are dropped.
        """
        if self.state == FrameState.REMOVED:
            logger.debug(f"Frame {self.id} removed, dropping message")
            return
        if target_origin != "*" and target_origin != self.origin:
            logger.debug(f"Target origin {target_origin} does not match {self.origin}")
            return
        self._deliver(copy.deepcopy(data))

    def _emit(self, data: Any) -> None:
        """Broadcast a message from the embedded side to the host."""
        if self.state == FrameState.REMOVED:
            return
        self.bus.post(data, origin=self.origin, source=self)

    def _unloaded(self, error: Optional[BaseException] = None) -> None:
        if self.state == FrameState.REMOVED:
            return
        if self.on_unload is not None:
            self.on_unload(error)

    async def remove(self) -> None:
        """Detach from the container and stop the embedded context."""
        if self.state == FrameState.REMOVED:
            return
        self.state = FrameState.REMOVED
        if self.parent is not None:
            self.parent.remove_child(self)
        await self._teardown()
        logger.debug(f"Frame {self.id} removed")

    async def _load(self) -> None:
        raise NotImplementedError

    def _deliver(self, data: Any) -> None:
        raise NotImplementedError

    async def _teardown(self) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.id}, {self.src}, {self.state.name})"


FrameFactory = Callable[..., Frame]


class LocalFrame(Frame):
    """
    Frame whose embedded side is an in-process EmbeddedRuntime.

    Usage:
        channel = Channel(
            "wallet", address,
            frame_factory=LocalFrame.factory(runtime),
        )
    """

    def __init__(
        self,
        frame_id: str,
        src: str,
        bus: MessageBus,
        styles: Optional[dict[str, Any]] = None,
        runtime: Optional[EmbeddedRuntime] = None,
        announce_ready: bool = True,
    ) -> None:
        super().__init__(frame_id, src, bus, styles)
        self.runtime = runtime or EmbeddedRuntime()
        self.announce_ready = announce_ready

    @classmethod
    def factory(cls, runtime: EmbeddedRuntime, **kwargs: Any) -> FrameFactory:
        """Create a frame factory bound to one runtime."""

        def create(frame_id: str, src: str, bus: MessageBus, styles=None) -> "LocalFrame":
            return cls(frame_id, src, bus, styles=styles, runtime=runtime, **kwargs)

        return create

    async def _load(self) -> None:
        # Boot on a later loop iteration, like a real document load
        await asyncio.sleep(0)
        self.runtime.connect(self._emit)
        if self.announce_ready:
            self.runtime.signal_ready()

    def _deliver(self, data: Any) -> None:
        asyncio.get_running_loop().call_soon(self.runtime.receive, data)

    async def _teardown(self) -> None:
        await self.runtime.close()


def ws_url_of(address: str) -> str:
    """Map an http(s) address to its ws(s) equivalent."""
    url = urlsplit(address)
    scheme = {"http": "ws", "https": "wss"}.get(url.scheme, url.scheme)
    return urlunsplit((scheme, url.netloc, url.path, url.query, ""))


class WebSocketFrame(Frame):
    """
    Frame whose embedded side is served over a WebSocket.

    The target address is opened as ``ws``/``wss``; every text frame the
    server sends is a message from the embedded side.
    """

    def __init__(
        self,
        frame_id: str,
        src: str,
        bus: MessageBus,
        styles: Optional[dict[str, Any]] = None,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
    ) -> None:
        super().__init__(frame_id, src, bus, styles)
        self.ws_url = ws_url_of(src)
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval

        self._ws: Any = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    async def _load(self) -> None:
        self._ws = await websockets.connect(
            self.ws_url,
            open_timeout=self.open_timeout,
            ping_interval=self.ping_interval,
        )
        loop = asyncio.get_running_loop()
        self._tasks.append(loop.create_task(self._read_loop()))
        self._tasks.append(loop.create_task(self._write_loop()))
        logger.info(f"Connected to embedded context at {self.ws_url}")

    async def _read_loop(self) -> None:
        error: Optional[BaseException] = None
        try:
            async for raw in self._ws:
                try:
                    data = decode_message(raw)
                except ProtocolError as e:
                    logger.debug(f"Dropping undecodable frame: {e}")
                    continue
                self._emit(data)
        except websockets.ConnectionClosed as e:
            error = e
        except Exception as e:
            logger.error(f"Reading from {self.ws_url} failed: {e}")
            error = e
        self._unloaded(error)

    async def _write_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await self._ws.send(text)
            except websockets.ConnectionClosed as e:
                logger.warning(f"Connection to {self.ws_url} closed while sending: {e}")
                return
            except Exception:
                logger.exception(f"Sending to {self.ws_url} failed")

    def _deliver(self, data: Any) -> None:
        try:
            text = encode_message(data)
        except ProtocolError as e:
            logger.warning(f"Frame {self.id}: dropping message: {e}")
            return
        self._outbox.put_nowait(text)

    async def _teardown(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        self._tasks.clear()

        if self._ws is not None:
            await self._ws.close()
            self._ws = None
