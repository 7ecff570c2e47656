from .identity import Identity
from .protocol import ChatMessage, RoomMembership
from .session import (
    JOINABLE_STATUSES,
    LiveSession,
    ParticipantRole,
    SessionParticipant,
    SessionStatus,
)

__all__ = [
    "Identity",
    "LiveSession",
    "SessionStatus",
    "SessionParticipant",
    "ParticipantRole",
    "JOINABLE_STATUSES",
    "ChatMessage",
    "RoomMembership",
]
