"""Wire protocol for the /ws/sessions Socket.IO namespace."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .identity import Identity

NAMESPACE = "/ws/sessions"

# Inbound (client -> gateway)
JOIN_SESSION = "join_session"
LEAVE_SESSION = "leave_session"
CHAT_MESSAGE = "chat_message"

# Outbound (gateway -> room)
PARTICIPANT_JOINED = "participant_joined"
PARTICIPANT_LEFT = "participant_left"

ACK_OK: dict[str, str] = {"status": "ok"}


def ack_error(reason: str) -> dict[str, str]:
    return {"status": "error", "reason": reason}


def room_name(session_id: int) -> str:
    return f"session:{session_id}"


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RoomPayload(_Payload):
    """Body of join_session / leave_session."""

    session_id: int = Field(alias="sessionId")


class ChatPayload(_Payload):
    session_id: int = Field(alias="sessionId")
    message: str = Field(min_length=1)


@dataclass(frozen=True)
class RoomMembership:
    session_id: int
    identity: Identity
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ChatMessage:
    id: str
    session_id: int
    user_id: int
    user_name: str
    message: str
    timestamp: datetime

    @classmethod
    def compose(cls, session_id: int, sender: Identity, text: str) -> ChatMessage:
        """Stamp a relayed message with a fresh id and the relay time."""
        return cls(
            id=uuid.uuid4().hex,
            session_id=session_id,
            user_id=sender.user_id,
            user_name=sender.display_name,
            message=text,
            timestamp=datetime.now(timezone.utc),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


def presence_payload(identity: Identity) -> dict[str, Any]:
    return {"user": identity.to_wire()}
