"""
WebSocket server hosting embedded runtimes.

Each connection gets its own EmbeddedRuntime; the readiness signal is sent
as soon as the connection is accepted.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import websockets
from websockets import ServerConnection

from ..exceptions import ProtocolError
from .guest import EmbeddedRuntime
from .protocol import decode_message, encode_message

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[], EmbeddedRuntime]


class EmbeddedServer:
    """
    Serves embedded runtimes to WebSocketFrame hosts.

    Usage:
        server = EmbeddedServer(make_runtime, port=0)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        runtime_factory: RuntimeFactory,
        host: str = "127.0.0.1",
        port: int = 8765,
    ) -> None:
        self.runtime_factory = runtime_factory
        self.host = host
        self.port = port

        self._server: Optional[Any] = None
        self.runtimes: list[EmbeddedRuntime] = []

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def base_url(self) -> str:
        """HTTP base location frames should be pointed at."""
        return f"http://{self.host}:{self.port}"

    async def start(self) -> None:
        """Start listening."""
        if self._server is not None:
            return

        self._server = await websockets.serve(self._handle_connection, self.host, self.port)

        # Update port if it was 0 (ephemeral)
        if self.port == 0:
            sock = next(iter(self._server.sockets))
            self.port = sock.getsockname()[1]

        logger.info(f"Embedded server started on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop listening and drop every connection."""
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Embedded server stopped")

    async def _handle_connection(self, ws: ServerConnection) -> None:
        runtime = self.runtime_factory()
        self.runtimes.append(runtime)
        outbox: asyncio.Queue = asyncio.Queue()
        runtime.connect(outbox.put_nowait)

        writer = asyncio.create_task(self._write_loop(ws, outbox))
        runtime.signal_ready()
        logger.debug(f"Embedded runtime attached for {ws.remote_address}")

        try:
            async for raw in ws:
                try:
                    data = decode_message(raw)
                except ProtocolError as e:
                    logger.debug(f"Dropping undecodable frame: {e}")
                    continue
                runtime.receive(data)
        except websockets.ConnectionClosed:
            pass
        finally:
            writer.cancel()
            await runtime.close()
            logger.debug(f"Embedded runtime detached for {ws.remote_address}")

    async def _write_loop(self, ws: ServerConnection, outbox: asyncio.Queue) -> None:
        while True:
            data = await outbox.get()
            try:
                await ws.send(encode_message(data))
            except websockets.ConnectionClosed:
                return
            except Exception:
                logger.exception(f"Sending to {ws.remote_address} failed")

    async def __aenter__(self) -> "EmbeddedServer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


async def serve_embedded(
    runtime_factory: RuntimeFactory,
    host: str = "127.0.0.1",
    port: int = 8765,
) -> EmbeddedServer:
    """Start an EmbeddedServer and return it."""
    server = EmbeddedServer(runtime_factory, host, port)
    await server.start()
    return server
