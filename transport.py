"""
Push channel for chat delivery.

``TransportMode`` is chosen once per session (from ``ENABLE_SOCKET`` unless
the caller passes one) and handed to the chat view. ``SocketIOPushChannel``
keeps the connection state the view needs: ``connected`` and a persistent
``connection_error`` banner that, once set, stays until a later successful
connect.
"""
import enum
import logging
from typing import Callable, Dict, List, Optional

import socketio

from config import settings

logger = logging.getLogger(__name__)

CONNECTION_ERROR_BANNER = (
    "Real-time chat temporarily unavailable - Messages will be saved but not delivered in real-time"
)


class TransportMode(str, enum.Enum):
    PUSH = "push"
    POLLING = "polling"

    @classmethod
    def from_settings(cls) -> "TransportMode":
        return cls.PUSH if settings.enable_socket else cls.POLLING


class SocketIOPushChannel:
    """Socket.IO client bound to one access token."""

    def __init__(self, token, url: Optional[str] = None, path: str = "/api/socketio", client=None):
        self.token = token
        self.url = url or settings.api_base_url
        self.path = path
        self.connected = False
        self.connection_error: Optional[str] = None
        self._listeners: List[Callable[[Dict], None]] = []
        self.sio = client or socketio.AsyncClient(reconnection=False)
        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_connect_error)
        self.sio.on("message", self._on_message)

    async def connect(self, timeout: float = 5.0) -> bool:
        if self.token is None:
            self.connection_error = "No authentication token"
            return False
        try:
            await self.sio.connect(
                self.url,
                socketio_path=self.path,
                transports=["websocket", "polling"],
                auth={"token": str(self.token)},
                wait_timeout=timeout,
            )
        except socketio.exceptions.ConnectionError as exc:
            logger.warning("socket connection failed: %s", exc)
            self.connected = False
            self.connection_error = CONNECTION_ERROR_BANNER
        return self.connected

    async def close(self):
        if self.connected:
            await self.sio.disconnect()
        self.connected = False

    def add_listener(self, callback: Callable[[Dict], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[Dict], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def join(self, chat_id):
        await self.sio.emit("join-chat", chat_id)

    async def leave(self, chat_id):
        if self.connected:
            await self.sio.emit("leave-chat", chat_id)

    def _on_connect(self):
        logger.info("socket connected")
        self.connected = True
        self.connection_error = None

    def _on_disconnect(self, *args):
        logger.info("socket disconnected")
        self.connected = False

    def _on_connect_error(self, data=None):
        logger.warning("socket connection error: %s", data)
        self.connected = False
        self.connection_error = CONNECTION_ERROR_BANNER

    def _on_message(self, payload):
        for callback in list(self._listeners):
            callback(payload)
