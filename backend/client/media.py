from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class MediaStream(Protocol):
    def stop(self) -> None: ...


class MediaDevices(Protocol):
    async def open(self) -> MediaStream: ...


class PeerConnection(Protocol):
    def close(self) -> None: ...


class LocalMedia:
    """
    Camera/microphone stream and peer connections owned by one SessionClient.

    Peer negotiation happens elsewhere; this object only guarantees release.
    release() is idempotent and safe on every exit path.
    """

    def __init__(self, devices: MediaDevices | None = None) -> None:
        self._devices = devices
        self._stream: MediaStream | None = None
        self._peers: dict[str, PeerConnection] = {}

    @property
    def active(self) -> bool:
        return self._stream is not None or bool(self._peers)

    @property
    def stream(self) -> MediaStream | None:
        return self._stream

    async def acquire(self) -> MediaStream | None:
        if self._stream is None and self._devices is not None:
            self._stream = await self._devices.open()
            logger.info("[media] Local stream acquired")
        return self._stream

    def add_peer(self, peer_id: str, connection: PeerConnection) -> None:
        previous = self._peers.pop(peer_id, None)
        if previous is not None:
            previous.close()
        self._peers[peer_id] = connection

    def remove_peer(self, peer_id: str) -> None:
        connection = self._peers.pop(peer_id, None)
        if connection is not None:
            connection.close()

    def release(self) -> None:
        stream, self._stream = self._stream, None
        peers, self._peers = list(self._peers.values()), {}
        if stream is not None:
            try:
                stream.stop()
            except Exception as exc:  # noqa: BLE001
                logger.warning("[media] Failed to stop local stream: %s", exc)
        for peer in peers:
            try:
                peer.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("[media] Failed to close peer connection: %s", exc)
        if stream is not None or peers:
            logger.info("[media] Released local stream and %d peer connection(s)", len(peers))
