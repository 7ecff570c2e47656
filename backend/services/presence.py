from __future__ import annotations

import logging
from collections.abc import Iterator

from models.protocol import RoomMembership

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """
    Who is currently in which room, keyed by Socket.IO connection id (sid).

    - A sid maps to at most one RoomMembership; set() replaces any previous one.
    - Every method is synchronous, so mutations issued from gateway handlers are
      serialized by the event loop without a lock.
    - Process-local. Running several gateway processes needs a shared store
      (e.g. Redis) behind this same interface.
    """

    def __init__(self) -> None:
        self._by_sid: dict[str, RoomMembership] = {}

    def set(self, sid: str, entry: RoomMembership) -> RoomMembership | None:
        previous = self._by_sid.get(sid)
        self._by_sid[sid] = entry
        logger.debug("[presence] set sid=%s session=%s previous=%s", sid, entry.session_id,
                     previous.session_id if previous else None)
        return previous

    def get(self, sid: str) -> RoomMembership | None:
        return self._by_sid.get(sid)

    def remove(self, sid: str) -> RoomMembership | None:
        return self._by_sid.pop(sid, None)

    def members_of(self, session_id: int) -> list[RoomMembership]:
        return [entry for entry in self._by_sid.values() if entry.session_id == session_id]

    def sids_in(self, session_id: int) -> list[str]:
        return [sid for sid, entry in self._by_sid.items() if entry.session_id == session_id]

    def clear(self) -> None:
        self._by_sid.clear()

    def __contains__(self, sid: object) -> bool:
        return sid in self._by_sid

    def __len__(self) -> int:
        return len(self._by_sid)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._by_sid))
