from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import socketio
from socketio import exceptions as sio_exceptions

from models.protocol import NAMESPACE
from services.errors import AuthenticationError, TransientConnectionError

logger = logging.getLogger(__name__)


class GatewayConnection:
    """
    One Socket.IO connection to the /ws/sessions namespace.

    Built-in reconnection is off: SessionClient owns the retry policy. A
    handshake refused by the server (bad/expired token) raises
    AuthenticationError; anything else that stops the connection raises
    TransientConnectionError.
    """

    def __init__(self, url: str, *, namespace: str = NAMESPACE, ack_timeout: float = 10.0,
                 connect_timeout: float = 10.0) -> None:
        self._url = url
        self._namespace = namespace
        self._ack_timeout = ack_timeout
        self._connect_timeout = connect_timeout
        self._refusal: Any = None
        self._sio = socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        self._sio.on("connect_error", self._on_connect_error, namespace=namespace)

    @property
    def connected(self) -> bool:
        return self._sio.connected

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._sio.on(event, handler, namespace=self._namespace)

    async def _on_connect_error(self, data: Any = None) -> None:
        self._refusal = data or "refused"
        logger.warning("[connection] Handshake refused: %s", data)

    async def connect(self, token: str) -> None:
        self._refusal = None
        try:
            await self._sio.connect(
                self._url,
                auth={"token": token},
                namespaces=[self._namespace],
                transports=["websocket"],
                wait_timeout=self._connect_timeout,
            )
        except sio_exceptions.ConnectionError as exc:
            if self._refusal is not None:
                message = self._refusal.get("message") if isinstance(self._refusal, dict) else str(self._refusal)
                raise AuthenticationError(f"socket handshake refused: {message}", reason=str(message)) from exc
            raise TransientConnectionError(f"socket connect failed: {exc}") from exc

    async def call(self, event: str, data: dict[str, Any]) -> Any:
        try:
            return await self._sio.call(event, data, namespace=self._namespace, timeout=self._ack_timeout)
        except sio_exceptions.TimeoutError as exc:
            raise TransientConnectionError(f"{event} not acknowledged within {self._ack_timeout}s") from exc
        except (sio_exceptions.BadNamespaceError, sio_exceptions.DisconnectedError) as exc:
            raise TransientConnectionError(f"{event} failed: socket not connected") from exc

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        try:
            await self._sio.emit(event, data, namespace=self._namespace)
        except (sio_exceptions.BadNamespaceError, sio_exceptions.DisconnectedError) as exc:
            raise TransientConnectionError(f"{event} failed: socket not connected") from exc

    async def disconnect(self) -> None:
        await self._sio.disconnect()
