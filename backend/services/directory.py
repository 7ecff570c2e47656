"""In-memory session directory: live-session metadata plus the REST participant roster."""

from __future__ import annotations

import itertools
import logging
import secrets
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from models.identity import Identity
from models.session import LiveSession, ParticipantRole, SessionParticipant, SessionStatus
from services.access import DEFAULT_JOIN_GUARDS, AccessContext, Guard, can_view, check_access
from services.errors import InvalidTransitionError, SessionNotFoundError

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {"title", "description", "scheduled_time", "role_access", "max_participants", "duration_minutes"}
)


class SessionDirectory:
    """
    Owns LiveSession records and who has joined them over REST.

    Socket presence lives in PresenceRegistry; this roster is what
    GET /live-sessions/{id}/participants serves and what client heartbeats
    reconcile against.
    """

    def __init__(self, *, admin_role: str = "admin", join_guards: Sequence[Guard] = DEFAULT_JOIN_GUARDS) -> None:
        self._admin_role = admin_role
        self._join_guards = tuple(join_guards)
        self._ids = itertools.count(1)
        self._sessions: dict[int, LiveSession] = {}
        # session_id -> user_id -> participant; one row per user per session.
        self._participants: dict[int, dict[int, SessionParticipant]] = {}

    @property
    def admin_role(self) -> str:
        return self._admin_role

    # --- CRUD ---

    def create(
        self,
        *,
        title: str,
        host: Identity,
        scheduled_time: datetime,
        role_access: Iterable[str],
        description: str = "",
        max_participants: int | None = None,
        duration_minutes: int | None = None,
    ) -> LiveSession:
        session = LiveSession(
            id=next(self._ids),
            title=title,
            description=description,
            host_id=host.user_id,
            scheduled_time=scheduled_time,
            role_access=set(role_access),
            max_participants=max_participants,
            duration_minutes=duration_minutes,
        )
        self._sessions[session.id] = session
        self._participants[session.id] = {}
        logger.info("[directory] Session created id=%s title=%r host=%s", session.id, title, host.user_id)
        return session

    def get(self, session_id: int) -> LiveSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    def list(self, *, viewer: Identity | None = None, status: SessionStatus | None = None) -> list[LiveSession]:
        result = []
        for session in self._sessions.values():
            if status is not None and session.status is not status:
                continue
            if viewer is not None and not can_view(viewer, session, self._admin_role):
                continue
            result.append(session)
        return sorted(result, key=lambda s: s.scheduled_time)

    def update(self, session_id: int, **changes: Any) -> LiveSession:
        session = self.get(session_id)
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        for name, value in changes.items():
            if value is None and name not in {"max_participants", "duration_minutes"}:
                continue
            if name == "role_access":
                value = set(value)
            setattr(session, name, value)
        session.updated_at = datetime.now(timezone.utc)
        return session

    def delete(self, session_id: int) -> None:
        self.get(session_id)
        self._sessions.pop(session_id, None)
        self._participants.pop(session_id, None)
        logger.info("[directory] Session deleted id=%s", session_id)

    # --- lifecycle ---

    def start(self, session_id: int) -> LiveSession:
        session = self._transition(session_id, SessionStatus.LIVE)
        session.started_at = session.updated_at
        return session

    def end(self, session_id: int) -> LiveSession:
        session = self._transition(session_id, SessionStatus.ENDED)
        session.ended_at = session.updated_at
        for participant in self._participants.get(session_id, {}).values():
            if participant.left_at is None:
                participant.left_at = session.ended_at
        return session

    def cancel(self, session_id: int) -> LiveSession:
        return self._transition(session_id, SessionStatus.CANCELLED)

    def _transition(self, session_id: int, target: SessionStatus) -> LiveSession:
        session = self.get(session_id)
        if not session.can_transition_to(target):
            raise InvalidTransitionError(f"Cannot move session from {session.status.value} to {target.value}")
        logger.info("[directory] Session %s: %s -> %s", session_id, session.status.value, target.value)
        session.status = target
        session.updated_at = datetime.now(timezone.utc)
        return session

    def can_manage(self, identity: Identity, session: LiveSession) -> bool:
        return identity.has_role(self._admin_role) or identity.user_id == session.host_id

    # --- roster ---

    def join(self, session_id: int, identity: Identity) -> SessionParticipant:
        session = self.get(session_id)
        roster = self._participants.setdefault(session_id, {})
        existing = roster.get(identity.user_id)
        present = [p for p in roster.values() if p.is_present]
        check_access(
            identity,
            session,
            AccessContext(
                admin_role=self._admin_role,
                present_count=len(present),
                already_present=existing is not None and existing.is_present,
            ),
            self._join_guards,
        )
        if existing is not None:
            # Re-joining (refresh, reconnect) reuses the same row.
            existing.left_at = None
            existing.joined_at = datetime.now(timezone.utc)
            return existing
        participant = SessionParticipant(
            id=secrets.token_urlsafe(8),
            session_id=session_id,
            user=identity,
            role=ParticipantRole.HOST if identity.user_id == session.host_id else ParticipantRole.PARTICIPANT,
        )
        roster[identity.user_id] = participant
        logger.info("[directory] User %s joined session %s", identity.user_id, session_id)
        return participant

    def leave(self, session_id: int, identity: Identity) -> SessionParticipant | None:
        self.get(session_id)
        participant = self._participants.get(session_id, {}).get(identity.user_id)
        if participant is None or not participant.is_present:
            return None
        participant.left_at = datetime.now(timezone.utc)
        logger.info("[directory] User %s left session %s", identity.user_id, session_id)
        return participant

    def participants(self, session_id: int) -> list[SessionParticipant]:
        self.get(session_id)
        present = [p for p in self._participants.get(session_id, {}).values() if p.is_present]
        return sorted(present, key=lambda p: p.joined_at)

    def clear(self) -> None:
        self._sessions.clear()
        self._participants.clear()
        self._ids = itertools.count(1)
