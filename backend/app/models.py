from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from models.identity import Identity
from models.session import LiveSession, ParticipantRole, SessionParticipant, SessionStatus

DEFAULT_ICE_SERVERS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
    "stun:stun2.l.google.com:19302",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UserOut(_CamelModel):
    id: int
    name: str
    email: str

    @classmethod
    def from_identity(cls, identity: Identity) -> UserOut:
        return cls(id=identity.user_id, name=identity.name, email=identity.email)


class SessionCreateRequest(_CamelModel):
    title: str = Field(min_length=1)
    description: str = ""
    scheduled_time: datetime = Field(alias="scheduledTime")
    role_access: list[str] = Field(alias="roleAccess", min_length=1)
    max_participants: int | None = Field(default=None, alias="maxParticipants", ge=1)
    duration: int | None = Field(default=None, ge=1)


class SessionUpdateRequest(_CamelModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    scheduled_time: datetime | None = Field(default=None, alias="scheduledTime")
    role_access: list[str] | None = Field(default=None, alias="roleAccess", min_length=1)
    max_participants: int | None = Field(default=None, alias="maxParticipants", ge=1)
    duration: int | None = Field(default=None, ge=1)


class SessionReadResponse(_CamelModel):
    id: int
    title: str
    description: str
    status: SessionStatus
    scheduled_time: datetime = Field(alias="scheduledTime")
    host_id: int = Field(alias="hostId")
    role_access: list[str] = Field(alias="roleAccess")
    max_participants: int | None = Field(default=None, alias="maxParticipants")
    duration: int | None = None
    participant_count: int = Field(default=0, alias="participantCount")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    started_at: datetime | None = Field(default=None, alias="startedAt")
    ended_at: datetime | None = Field(default=None, alias="endedAt")

    @classmethod
    def from_session(cls, session: LiveSession, participant_count: int = 0) -> SessionReadResponse:
        return cls(
            id=session.id,
            title=session.title,
            description=session.description,
            status=session.status,
            scheduled_time=session.scheduled_time,
            host_id=session.host_id,
            role_access=sorted(session.role_access),
            max_participants=session.max_participants,
            duration=session.duration_minutes,
            participant_count=participant_count,
            created_at=session.created_at,
            updated_at=session.updated_at,
            started_at=session.started_at,
            ended_at=session.ended_at,
        )


class ParticipantResponse(_CamelModel):
    id: str
    session_id: int = Field(alias="sessionId")
    user_id: int = Field(alias="userId")
    role: ParticipantRole
    joined_at: datetime = Field(alias="joinedAt")
    user: UserOut

    @classmethod
    def from_participant(cls, participant: SessionParticipant) -> ParticipantResponse:
        return cls(
            id=participant.id,
            session_id=participant.session_id,
            user_id=participant.user.user_id,
            role=participant.role,
            joined_at=participant.joined_at,
            user=UserOut.from_identity(participant.user),
        )


class IceServer(BaseModel):
    urls: str


class JoinSessionResponse(_CamelModel):
    session_data: SessionReadResponse = Field(alias="sessionData")
    participant: ParticipantResponse
    ice_servers: list[IceServer] = Field(alias="iceServers")


class StatusResponse(BaseModel):
    status: str = "ok"
