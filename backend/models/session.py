from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .identity import Identity


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    CANCELLED = "cancelled"


JOINABLE_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.LIVE})

# Allowed lifecycle moves: scheduled -> live -> ended, scheduled -> cancelled.
SESSION_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.LIVE, SessionStatus.CANCELLED}),
    SessionStatus.LIVE: frozenset({SessionStatus.ENDED}),
    SessionStatus.ENDED: frozenset(),
    SessionStatus.CANCELLED: frozenset(),
}


class ParticipantRole(str, Enum):
    HOST = "host"
    PARTICIPANT = "participant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LiveSession:
    id: int
    title: str
    host_id: int
    scheduled_time: datetime
    description: str = ""
    status: SessionStatus = SessionStatus.SCHEDULED
    role_access: set[str] = field(default_factory=set)
    max_participants: int | None = None
    duration_minutes: int | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_joinable(self) -> bool:
        return self.status in JOINABLE_STATUSES

    def can_transition_to(self, target: SessionStatus) -> bool:
        return target in SESSION_TRANSITIONS[self.status]


@dataclass
class SessionParticipant:
    id: str
    session_id: int
    user: Identity
    role: ParticipantRole = ParticipantRole.PARTICIPANT
    joined_at: datetime = field(default_factory=_utcnow)
    left_at: datetime | None = None

    @property
    def is_present(self) -> bool:
        return self.left_at is None
