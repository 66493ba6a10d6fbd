"""Socket.io push channel carrying ``API:Playback`` events.

Incoming messages are queued synchronously in arrival order; one consumer
task (the session) drains the queue. Reconnection is owned by the session
state machine, so the socket.io client's own reconnect logic is disabled.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from .api_client import TransportError
from .data_models import PushEvent

logger = logging.getLogger(__name__)

PLAYBACK_EVENT = "API:Playback"


def _default_client() -> socketio.AsyncClient:
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class PushChannel:
    """One socket.io connection at a time, with an ordered event queue."""

    def __init__(
        self,
        url: str = "http://127.0.0.1:10767",
        *,
        client_factory: Callable[[], socketio.AsyncClient] = _default_client,
    ) -> None:
        self.url = url
        self._client_factory = client_factory
        self._sio: Optional[socketio.AsyncClient] = None
        self.events: "asyncio.Queue[PushEvent]" = asyncio.Queue()
        self.closed = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    def _bind(self, sio: socketio.AsyncClient) -> None:
        @sio.on(PLAYBACK_EVENT)
        def on_playback(message: Any) -> None:
            if sio is not self._sio:
                return
            event = PushEvent.from_message(message)
            if event is None:
                logger.warning("Ignoring malformed push message: %r", message)
                return
            self.events.put_nowait(event)

        @sio.on("disconnect")
        def on_disconnect(*_args: Any) -> None:
            if sio is self._sio:
                logger.info("Push channel disconnected")
                self.closed.set()

        @sio.on("connect_error")
        def on_connect_error(data: Any = None) -> None:
            if sio is self._sio:
                logger.warning("Push channel error: %s", data)
                self.closed.set()

    async def connect(self, timeout: float) -> None:
        """Open a fresh connection; raises ``TransportError`` on failure or timeout."""
        await self.disconnect()
        self.drain()
        self.closed.clear()
        sio = self._client_factory()
        self._sio = sio
        self._bind(sio)
        try:
            await asyncio.wait_for(sio.connect(self.url, transports=["websocket"]), timeout)
        except asyncio.TimeoutError as exc:
            await self.disconnect()
            raise TransportError(f"Push channel handshake timed out after {timeout}s") from exc
        except SocketConnectionError as exc:
            await self.disconnect()
            raise TransportError(f"Push channel connect failed: {exc}") from exc
        logger.info("Push channel connected to %s", self.url)

    async def disconnect(self) -> None:
        sio = self._sio
        self._sio = None
        if sio is None:
            return
        try:
            await sio.disconnect()
        except Exception as exc:  # pragma: no cover - best effort
            logger.debug("Push channel disconnect error: %s", exc)

    def drain(self) -> int:
        """Drop queued events; returns how many were discarded."""
        dropped = 0
        while True:
            try:
                self.events.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            dropped += 1
