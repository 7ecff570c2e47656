from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import parse_qs

from pydantic import ValidationError
from socketio.exceptions import ConnectionRefusedError

from models.identity import Identity
from models.protocol import (
    ACK_OK,
    CHAT_MESSAGE,
    JOIN_SESSION,
    LEAVE_SESSION,
    NAMESPACE,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
    ChatMessage,
    ChatPayload,
    RoomMembership,
    RoomPayload,
    ack_error,
    presence_payload,
    room_name,
)
from services.access import can_view
from services.auth import AuthVerifier, parse_bearer
from services.directory import SessionDirectory
from services.errors import AuthenticationError, LiveSessionError
from services.presence import PresenceRegistry

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


def extract_handshake_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """
    Bearer token from a Socket.IO handshake, in priority order:
    `auth.token`, `Authorization: Bearer` header, `?token=` query parameter.

    python-socketio hands ASGI connections a WSGI-style environ (HTTP_*,
    QUERY_STRING) that also carries the raw scope under "asgi.scope".
    """
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    scope = environ.get("asgi.scope") if isinstance(environ, dict) else None
    if not isinstance(scope, dict):
        scope = {}

    header = environ.get("HTTP_AUTHORIZATION") if isinstance(environ, dict) else None
    if not header:
        for name, value in scope.get("headers", []):
            if name.lower() == b"authorization":
                header = value.decode(errors="ignore")
                break
    token = parse_bearer(header)
    if token:
        return token

    query_string: str | bytes = ""
    if isinstance(environ, dict) and "QUERY_STRING" in environ:
        query_string = environ.get("QUERY_STRING", "")
    elif "query_string" in scope:
        query_string = scope.get("query_string", b"")
    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")
    token = parse_qs(str(query_string)).get("token", [None])[0]
    return token or None


class SessionGateway:
    """
    Socket.IO protocol handler for the /ws/sessions namespace.

    Rooms are named "session:{id}". Presence events go to everyone in the room
    except the originator; chat goes to everyone, sender included.

    Each handler finishes its PresenceRegistry mutation before its first await,
    so join/leave/disconnect for different connections never interleave
    mid-mutation on the single event loop.
    """

    def __init__(
        self,
        sio: Any,
        registry: PresenceRegistry,
        verifier: AuthVerifier,
        *,
        directory: SessionDirectory | None = None,
        namespace: str = NAMESPACE,
    ) -> None:
        self._sio = sio
        self._registry = registry
        self._verifier = verifier
        self._directory = directory
        self._namespace = namespace
        self._identities: dict[str, Identity] = {}
        self._handlers: dict[str, Handler] = {
            "connect": self.on_connect,
            "disconnect": self.on_disconnect,
            JOIN_SESSION: self._guarded(JOIN_SESSION, self.on_join_session),
            LEAVE_SESSION: self._guarded(LEAVE_SESSION, self.on_leave_session),
            CHAT_MESSAGE: self._guarded(CHAT_MESSAGE, self.on_chat_message),
        }

    @property
    def handlers(self) -> dict[str, Handler]:
        return dict(self._handlers)

    @property
    def registry(self) -> PresenceRegistry:
        return self._registry

    def attach(self) -> None:
        for event, handler in self._handlers.items():
            self._sio.on(event, handler=handler, namespace=self._namespace)
        logger.info("[gateway] Registered %d handlers on namespace %s", len(self._handlers), self._namespace)

    def identity_of(self, sid: str) -> Identity | None:
        return self._identities.get(sid)

    def _guarded(self, event: str, handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(sid: str, data: Any = None) -> Any:
            if sid not in self._identities:
                logger.warning("[gateway] %s from unauthenticated sid=%s dropped", event, sid)
                return ack_error("unauthenticated")
            try:
                return await handler(sid, data)
            except ValidationError as exc:
                logger.warning("[gateway] Malformed %s payload from sid=%s dropped: %s", event, sid, exc.errors())
                return ack_error("invalid_payload")
            except Exception:
                logger.exception("[gateway] %s handler failed for sid=%s", event, sid)
                return ack_error("server_error")

        return wrapper

    # --- connection lifecycle ---

    async def on_connect(self, sid: str, environ: dict[str, Any], auth: Any | None = None) -> None:
        token = extract_handshake_token(environ, auth)
        try:
            identity = self._verifier.verify(token)
        except AuthenticationError as exc:
            logger.warning("[gateway] Handshake refused sid=%s: %s", sid, exc)
            raise ConnectionRefusedError(exc.reason) from exc
        self._identities[sid] = identity
        logger.info("[gateway] Connected sid=%s user=%s", sid, identity.user_id)

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        identity = self._identities.pop(sid, None)
        entry = self._registry.remove(sid)
        logger.info("[gateway] Disconnected sid=%s user=%s reason=%s", sid,
                    identity.user_id if identity else None, reason)
        if entry is not None:
            await self._emit_left(sid, entry)

    # --- events ---

    async def on_join_session(self, sid: str, data: Any) -> dict[str, str]:
        payload = RoomPayload.model_validate(data)
        identity = self._identities[sid]
        refusal = self._check_room_access(identity, payload.session_id)
        if refusal:
            logger.warning("[gateway] join_session refused sid=%s session=%s: %s", sid, payload.session_id, refusal)
            return ack_error(refusal)

        membership = RoomMembership(session_id=payload.session_id, identity=identity)
        previous = self._registry.set(sid, membership)
        switched = previous is not None and previous.session_id != payload.session_id
        room = room_name(payload.session_id)

        # Room bookkeeping happens before any broadcast; emits can suspend.
        if switched:
            await self._sio.leave_room(sid, room_name(previous.session_id), namespace=self._namespace)
        await self._sio.enter_room(sid, room, namespace=self._namespace)

        current = self._registry.get(sid)
        if current is membership:
            await self._sio.emit(
                PARTICIPANT_JOINED, presence_payload(identity), to=room, skip_sid=sid, namespace=self._namespace
            )
            logger.info("[gateway] sid=%s user=%s joined %s", sid, identity.user_id, room)
        else:
            logger.info("[gateway] sid=%s disconnected or moved while joining %s", sid, room)
            if current is None or current.session_id != payload.session_id:
                await self._sio.leave_room(sid, room, namespace=self._namespace)

        if switched:
            await self._emit_left(sid, previous)
        return ACK_OK

    async def on_leave_session(self, sid: str, data: Any) -> dict[str, str]:
        payload = RoomPayload.model_validate(data)
        entry = self._registry.get(sid)
        if entry is None or entry.session_id != payload.session_id:
            return ACK_OK
        self._registry.remove(sid)
        await self._sio.leave_room(sid, room_name(entry.session_id), namespace=self._namespace)
        await self._emit_left(sid, entry)
        return ACK_OK

    async def on_chat_message(self, sid: str, data: Any) -> dict[str, str]:
        payload = ChatPayload.model_validate(data)
        entry = self._registry.get(sid)
        if entry is None or entry.session_id != payload.session_id:
            logger.warning("[gateway] chat_message for session=%s from sid=%s outside that room dropped",
                           payload.session_id, sid)
            return ack_error("not_joined")
        message = ChatMessage.compose(entry.session_id, entry.identity, payload.message)
        await self._sio.emit(CHAT_MESSAGE, message.to_wire(), to=room_name(entry.session_id), namespace=self._namespace)
        return ACK_OK

    async def _emit_left(self, sid: str, entry: RoomMembership) -> None:
        room = room_name(entry.session_id)
        await self._sio.emit(
            PARTICIPANT_LEFT, presence_payload(entry.identity), to=room, skip_sid=sid, namespace=self._namespace
        )
        logger.info("[gateway] sid=%s user=%s left %s", sid, entry.identity.user_id, room)

    def _check_room_access(self, identity: Identity, session_id: int) -> str | None:
        if self._directory is None:
            return None
        try:
            session = self._directory.get(session_id)
        except LiveSessionError:
            return "session_not_found"
        if not session.is_joinable:
            return "session_unavailable"
        if not can_view(identity, session, self._directory.admin_role):
            return "forbidden"
        return None
