"""
Broadcast message bus shared by every channel of a process.

This module provides:
- MessageEvent: one delivered message with its origin and source
- MessageBus: fire-and-forget, broadcast-style delivery to listeners

Delivery is never synchronous with posting: each listener is invoked from
its own event-loop callback, so a post returns before anyone sees it.
"""

import asyncio
import copy
import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class MessageEvent(BaseModel):
    """A message as seen by a listener."""

    data: Any
    origin: str
    source: Any = None  # Handle of the posting context

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


Listener = Callable[[MessageEvent], None]


class MessageBus:
    """
    Untyped, unordered-delivery message bus.

    Every listener receives every message; filtering by source and origin
    is the listener's job.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        """Register a listener."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        """Detach a listener. Pending deliveries to it are dropped."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def has_listener(self, listener: Listener) -> bool:
        return listener in self._listeners

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def post(self, data: Any, origin: str, source: Any = None) -> None:
        """
        Broadcast a message.

        Args:
            data: Message payload
            origin: Origin of the posting context
            source: Handle of the posting context
        """
        event = MessageEvent(data=copy.deepcopy(data), origin=origin, source=source)
        loop = asyncio.get_running_loop()
        for listener in list(self._listeners):
            loop.call_soon(self._deliver, listener, event)

    def _deliver(self, listener: Listener, event: MessageEvent) -> None:
        if listener not in self._listeners:
            return
        try:
            listener(event)
        except Exception:
            logger.exception("Message listener failed")


# Process-wide bus, the analog of the page's window
default_bus = MessageBus()
