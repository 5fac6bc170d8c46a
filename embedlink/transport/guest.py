"""
Embedded-side runtime.

Runs inside the embedded context: announces readiness, keeps the
initialization variables and answers correlated procedure calls.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from ..exceptions import ProtocolError
from .protocol import (
    ProcedureCall,
    ProcedureResult,
    ReadySignal,
    encode_message,
    is_init_message,
)

logger = logging.getLogger(__name__)

Procedure = Callable[[Any], Union[Any, Awaitable[Any]]]
Emitter = Callable[[dict[str, Any]], None]


class EmbeddedRuntime:
    """
    Procedure dispatcher for the embedded side of a channel.

    Usage:
        runtime = EmbeddedRuntime()

        @runtime.procedure("getUserStatus")
        async def get_user_status(params):
            return {"status": "LOGGED_OUT"}
    """

    def __init__(self, procedures: Optional[dict[str, Procedure]] = None):
        self._procedures: dict[str, Procedure] = dict(procedures or {})
        self._emit: Optional[Emitter] = None
        self._tasks: set[asyncio.Task] = set()

        self.init_variables: Optional[dict[str, Any]] = None
        self.init_count = 0
        self.received: list[dict[str, Any]] = []

    def register(self, name: str, procedure: Procedure) -> None:
        """Register a named procedure."""
        if not name:
            raise ValueError("Procedure name cannot be empty")
        self._procedures[name] = procedure

    def procedure(self, name: Optional[str] = None) -> Callable[[Procedure], Procedure]:
        """Decorator form of register()."""

        def decorator(fn: Procedure) -> Procedure:
            self.register(name or fn.__name__, fn)
            return fn

        return decorator

    @property
    def procedure_names(self) -> list[str]:
        return sorted(self._procedures)

    def connect(self, emit: Emitter) -> None:
        """Attach the function used to send messages to the host."""
        self._emit = emit

    def signal_ready(self) -> None:
        """Tell the host this context is ready to receive calls."""
        self._send(ReadySignal().to_wire())

    def receive(self, data: Any) -> None:
        """Handle one message from the host without blocking the caller."""
        task = asyncio.get_running_loop().create_task(self.handle(data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, data: Any) -> Optional[dict[str, Any]]:
        """
        Process one message from the host.

        Returns:
            The reply sent, or None for the init message and bad input
        """
        if is_init_message(data):
            self.init_count += 1
            self.init_variables = {k: v for k, v in data.items() if k != "correlationId"}
            logger.debug(f"Received init variables: {sorted(self.init_variables)}")
            return None

        try:
            call = ProcedureCall.from_wire(data)
        except ProtocolError as e:
            logger.debug(f"Dropping malformed call: {e}")
            return None

        self.received.append(call.to_wire())
        reply = await self._invoke(call)
        self._send(reply.to_wire())
        return reply.to_wire()

    async def _invoke(self, call: ProcedureCall) -> ProcedureResult:
        procedure = self._procedures.get(call.procedure_name)
        if procedure is None:
            return ProcedureResult.failure(
                call.correlation_id, f"Unknown procedure: {call.procedure_name}"
            )

        try:
            result = procedure(call.params)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.debug(f"Procedure {call.procedure_name} failed: {e}")
            return ProcedureResult.failure(call.correlation_id, str(e))

        try:
            encode_message(result)
        except ProtocolError as e:
            logger.debug(f"Procedure {call.procedure_name} returned an unsendable result: {e}")
            return ProcedureResult.failure(call.correlation_id, str(e))

        return ProcedureResult.success(call.correlation_id, result)

    def _send(self, data: dict[str, Any]) -> None:
        if self._emit is None:
            logger.warning("Runtime not connected, dropping message")
            return
        self._emit(data)

    async def close(self) -> None:
        """Cancel in-flight procedure calls."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._emit = None
