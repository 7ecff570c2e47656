"""Participant-side controller for one live session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from client.connection import GatewayConnection
from client.directory_api import DirectoryAPI
from client.media import LocalMedia
from models.identity import Identity
from models.protocol import (
    CHAT_MESSAGE,
    JOIN_SESSION,
    LEAVE_SESSION,
    PARTICIPANT_JOINED,
    PARTICIPANT_LEFT,
)
from services.errors import (
    AuthenticationError,
    AuthorizationError,
    LiveSessionError,
    ProtocolError,
    SessionUnavailableError,
    TransientConnectionError,
)

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 45.0
MAX_RETRIES = 3
BASE_RETRY_DELAY_MS = 3000
MAX_RETRY_DELAY_MS = 15000

EXHAUSTED_MESSAGE = "Unable to connect to session after multiple attempts. Please refresh the page."

# Join ack reasons that no amount of retrying will fix.
_TERMINAL_ACK_REASONS = {
    "forbidden": AuthorizationError,
    "session_unavailable": SessionUnavailableError,
    "session_not_found": SessionUnavailableError,
}


def retry_delay(attempt: int) -> float:
    """Seconds to wait before retry `attempt` (0-based): 3s, 6s, 12s, capped at 15s."""
    return min(BASE_RETRY_DELAY_MS * 2**attempt, MAX_RETRY_DELAY_MS) / 1000


class ClientState(str, Enum):
    IDLE = "idle"
    JOINING = "joining"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    LEAVING = "leaving"


@dataclass(frozen=True)
class Participant:
    user_id: int
    name: str
    email: str = ""

    @classmethod
    def from_wire(cls, user: dict[str, Any]) -> Participant:
        return cls(user_id=int(user["id"]), name=user.get("name") or user.get("email") or "User",
                   email=user.get("email") or "")


@dataclass
class LocalChatMessage:
    id: str
    user_id: int
    user_name: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pending: bool = False


class _StaleAttempt(Exception):
    """Raised inside a join attempt whose epoch has been superseded."""


class SessionClient:
    """
    Drives one participant's side of a live session.

    idle -> joining -> connected <-> reconnecting -> connected | failed,
    plus leaving -> idle on leave_room().

    Every join attempt runs under an epoch number. leave_room(),
    dispose_local_resources() and each new attempt advance the epoch, and an
    attempt that finds its epoch outdated after an await throws its result
    away (closing any socket it opened) instead of touching client state.
    """

    def __init__(
        self,
        session_id: int,
        user: Identity,
        *,
        directory: DirectoryAPI,
        connection_factory: Callable[[], GatewayConnection],
        token_provider: Callable[[], str],
        media: LocalMedia | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_state_change: Callable[[ClientState], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self.user = user
        self._directory = directory
        self._connection_factory = connection_factory
        self._token_provider = token_provider
        self._media = media or LocalMedia()
        self._heartbeat_interval = heartbeat_interval
        self._max_retries = max_retries
        self._sleep = sleep
        self._on_state_change = on_state_change

        self._state = ClientState.IDLE
        self._epoch = 0
        self._connection: GatewayConnection | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._recovery_task: asyncio.Task[None] | None = None
        self._visible = True
        self.retry_count = 0
        self.error: BaseException | None = None
        self.error_message: str | None = None
        self.session_data: dict[str, Any] | None = None
        self.participants: dict[int, Participant] = {}
        self.messages: list[LocalChatMessage] = []

    # --- state ---

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def media(self) -> LocalMedia:
        return self._media

    def _set_state(self, state: ClientState) -> None:
        if state is self._state:
            return
        logger.info("[session_client] session=%s %s -> %s", self.session_id, self._state.value, state.value)
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _advance_epoch(self) -> int:
        self._epoch += 1
        return self._epoch

    def _check_epoch(self, epoch: int) -> None:
        if epoch != self._epoch:
            raise _StaleAttempt()

    # --- joining ---

    async def join(self) -> ClientState:
        """Run the join sequence, retrying transient failures. Returns the resulting state."""
        if self._state not in (ClientState.IDLE, ClientState.FAILED):
            return self._state
        epoch = self._advance_epoch()
        self.error = None
        self.error_message = None
        self.retry_count = 0
        self._set_state(ClientState.JOINING)
        try:
            await self._join_sequence(epoch)
        except _StaleAttempt:
            logger.info("[session_client] Join attempt %s abandoned", epoch)
        except Exception as exc:  # noqa: BLE001
            if _is_terminal(exc):
                await self._fail(exc)
            else:
                await self._recover(exc, epoch)
        return self._state

    async def _join_sequence(self, epoch: int) -> None:
        """REST join, socket connect, join_session ack, roster load, local media."""
        joined = await self._directory.join(self.session_id)
        self._check_epoch(epoch)
        self.session_data = (joined or {}).get("sessionData")

        connection = self._connection_factory()
        self._bind(connection)
        try:
            await connection.connect(self._token_provider())
            self._check_epoch(epoch)
            ack = await connection.call(JOIN_SESSION, {"sessionId": self.session_id})
            self._check_epoch(epoch)
            _raise_for_ack(ack)
            roster = await self._directory.participants(self.session_id)
            self._check_epoch(epoch)
        except BaseException:
            await _close_quietly(connection)
            raise

        self._connection = connection
        self._replace_roster(roster)
        try:
            await self._media.acquire()
        except Exception as exc:  # noqa: BLE001
            logger.warning("[session_client] Local media unavailable, continuing without it: %s", exc)
        if epoch != self._epoch:
            self._media.release()
            raise _StaleAttempt()

        self.retry_count = 0
        self._set_state(ClientState.CONNECTED)
        self._start_heartbeat(epoch)

    async def _recover(self, exc: BaseException, epoch: int) -> None:
        """Bounded reconnection: max_retries attempts at 3s, 6s, 12s, then failed."""
        self._set_state(ClientState.RECONNECTING)
        self.error = exc
        self._stop_heartbeat()
        last_error: BaseException = exc
        for attempt in range(self._max_retries):
            delay = retry_delay(attempt)
            self.retry_count = attempt + 1
            logger.warning(
                "[session_client] session=%s connection problem (%s); retry %d/%d in %.0fs",
                self.session_id, last_error, attempt + 1, self._max_retries, delay,
            )
            await self._sleep(delay)
            if epoch != self._epoch:
                return
            await self._drop_connection()
            epoch = self._advance_epoch()
            try:
                await self._join_sequence(epoch)
                logger.info("[session_client] session=%s reconnected after %d retr%s",
                            self.session_id, attempt + 1, "y" if attempt == 0 else "ies")
                return
            except _StaleAttempt:
                return
            except Exception as retry_exc:  # noqa: BLE001
                if _is_terminal(retry_exc):
                    await self._fail(retry_exc)
                    return
                last_error = retry_exc
        await self._fail(last_error, message=EXHAUSTED_MESSAGE)

    async def _fail(self, exc: BaseException, *, message: str | None = None) -> None:
        logger.error("[session_client] session=%s failed: %s", self.session_id, exc)
        self.error = exc
        self.error_message = message or _user_message(exc)
        self._stop_heartbeat()
        self._media.release()
        await self._drop_connection()
        self._set_state(ClientState.FAILED)

    def _on_connection_lost(self, connection: GatewayConnection) -> None:
        if connection is not self._connection or self._state is not ClientState.CONNECTED:
            return
        logger.warning("[session_client] session=%s socket closed unexpectedly", self.session_id)
        self._recovery_task = asyncio.create_task(
            self._recover(TransientConnectionError("socket closed"), self._epoch)
        )

    # --- socket events ---

    def _bind(self, connection: GatewayConnection) -> None:
        async def on_disconnect(*_: Any) -> None:
            self._on_connection_lost(connection)

        connection.on("disconnect", on_disconnect)
        connection.on(PARTICIPANT_JOINED, self._on_participant_joined)
        connection.on(PARTICIPANT_LEFT, self._on_participant_left)
        connection.on(CHAT_MESSAGE, self._on_chat_message)

    async def _on_participant_joined(self, payload: Any) -> None:
        user = payload.get("user") if isinstance(payload, dict) else None
        if not user or user.get("id") is None:
            return
        participant = Participant.from_wire(user)
        self.participants.setdefault(participant.user_id, participant)

    async def _on_participant_left(self, payload: Any) -> None:
        user = payload.get("user") if isinstance(payload, dict) else None
        if not user or user.get("id") is None:
            return
        self.participants.pop(int(user["id"]), None)

    async def _on_chat_message(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        user_id = payload.get("userId")
        text = payload.get("message", "")
        timestamp = _parse_timestamp(payload.get("timestamp"))
        if user_id == self.user.user_id:
            for local in self.messages:
                if local.pending and local.message == text:
                    # Server echo of our optimistic message.
                    local.id = payload.get("id") or local.id
                    local.timestamp = timestamp
                    local.pending = False
                    return
        self.messages.append(LocalChatMessage(
            id=payload.get("id") or uuid.uuid4().hex,
            user_id=user_id,
            user_name=payload.get("userName") or "User",
            message=text,
            timestamp=timestamp,
        ))

    async def send_chat(self, text: str) -> LocalChatMessage | None:
        text = text.strip()
        if not text:
            return None
        if self._state is not ClientState.CONNECTED or self._connection is None:
            logger.warning("[session_client] Not connected; chat message not sent")
            return None
        local = LocalChatMessage(
            id=f"local-{uuid.uuid4().hex}",
            user_id=self.user.user_id,
            user_name=self.user.display_name,
            message=text,
            pending=True,
        )
        self.messages.append(local)
        try:
            await self._connection.emit(CHAT_MESSAGE, {"sessionId": self.session_id, "message": text})
        except TransientConnectionError as exc:
            logger.warning("[session_client] chat_message emit failed: %s", exc)
        return local

    # --- heartbeat & visibility ---

    def _start_heartbeat(self, epoch: int) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(epoch))

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self, epoch: int) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if epoch != self._epoch or self._state is not ClientState.CONNECTED:
                return
            await self.heartbeat()

    async def heartbeat(self) -> bool:
        """Best-effort roster refresh; skipped while hidden, failures only logged."""
        if not self._visible:
            logger.debug("[session_client] Skipping heartbeat - tab is hidden")
            return False
        return await self.refresh_participants()

    async def refresh_participants(self) -> bool:
        epoch = self._epoch
        try:
            roster = await self._directory.participants(self.session_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("[session_client] Participant refresh failed: %s", exc)
            return False
        if epoch != self._epoch:
            return False
        self._replace_roster(roster)
        return True

    async def set_visibility(self, visible: bool) -> None:
        was_visible, self._visible = self._visible, visible
        if visible and not was_visible and self._state is ClientState.CONNECTED:
            logger.info("[session_client] Visible again - refreshing participants")
            await self.refresh_participants()

    def _replace_roster(self, roster: list[dict[str, Any]]) -> None:
        participants: dict[int, Participant] = {}
        for row in roster or []:
            user = row.get("user") if isinstance(row, dict) else None
            if user:
                participant = Participant.from_wire(user)
                participants[participant.user_id] = participant
        self.participants = participants

    # --- exits ---

    async def leave_room(self) -> None:
        """Real departure: stop media, tell the gateway and the directory, close the socket."""
        if self._state is ClientState.IDLE:
            return
        self._advance_epoch()
        self._set_state(ClientState.LEAVING)
        self._stop_heartbeat()
        self._cancel_recovery()
        self._media.release()

        connection, self._connection = self._connection, None
        if connection is not None:
            try:
                await connection.emit(LEAVE_SESSION, {"sessionId": self.session_id})
            except LiveSessionError as exc:
                logger.warning("[session_client] leave_session emit failed: %s", exc)
        try:
            await self._directory.leave(self.session_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("[session_client] REST leave failed: %s", exc)
        if connection is not None:
            await _close_quietly(connection)

        self.participants = {}
        self._set_state(ClientState.IDLE)

    async def dispose_local_resources(self) -> None:
        """
        Soft cleanup for transient remounts: release media and peers, stop the
        heartbeat and close the socket without leave_session or the REST leave.
        The directory roster still lists the user, so a remount can rejoin.
        """
        self._advance_epoch()
        self._stop_heartbeat()
        self._cancel_recovery()
        self._media.release()
        await self._drop_connection()
        self._set_state(ClientState.IDLE)

    def _cancel_recovery(self) -> None:
        task, self._recovery_task = self._recovery_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _drop_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await _close_quietly(connection)


def _is_terminal(exc: BaseException) -> bool:
    return isinstance(exc, LiveSessionError) and not exc.retryable


def _raise_for_ack(ack: Any) -> None:
    if isinstance(ack, dict) and ack.get("status") == "ok":
        return
    reason = ack.get("reason") if isinstance(ack, dict) else None
    error_type = _TERMINAL_ACK_REASONS.get(reason or "")
    if error_type is not None:
        raise error_type(reason)
    raise ProtocolError(f"join_session not acknowledged: {ack!r}")


def _user_message(exc: BaseException) -> str:
    if isinstance(exc, SessionUnavailableError):
        return "Session unavailable"
    if isinstance(exc, AuthorizationError):
        return "You do not have access to this session"
    if isinstance(exc, AuthenticationError):
        return "Please log in again to join the session"
    if isinstance(exc, LiveSessionError) and not exc.retryable:
        return str(exc) or "Unable to join session"
    return EXHAUSTED_MESSAGE


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        with contextlib.suppress(ValueError):
            return datetime.fromisoformat(value)
    return datetime.now(timezone.utc)


async def _close_quietly(connection: GatewayConnection) -> None:
    try:
        await connection.disconnect()
    except Exception as exc:  # noqa: BLE001
        logger.debug("[session_client] Ignoring error while closing socket: %s", exc)
