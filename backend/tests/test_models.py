from datetime import datetime

from conftest import ALICE, FREE_USER, tomorrow
from models import Identity, LiveSession, SessionParticipant, SessionStatus
from models.protocol import ChatMessage, RoomPayload, presence_payload, room_name


def test_live_session_defaults() -> None:
    session = LiveSession(id=1, title="London open", host_id=1, scheduled_time=tomorrow())
    assert session.status is SessionStatus.SCHEDULED
    assert isinstance(session.created_at, datetime)
    assert session.started_at is None
    assert session.ended_at is None
    assert session.role_access == set()
    assert session.max_participants is None
    assert session.is_joinable is True


def test_session_lifecycle_transitions() -> None:
    session = LiveSession(id=1, title="t", host_id=1, scheduled_time=tomorrow())
    assert session.can_transition_to(SessionStatus.LIVE)
    assert session.can_transition_to(SessionStatus.CANCELLED)
    assert not session.can_transition_to(SessionStatus.ENDED)

    session.status = SessionStatus.LIVE
    assert session.can_transition_to(SessionStatus.ENDED)
    assert not session.can_transition_to(SessionStatus.CANCELLED)
    assert session.is_joinable

    for terminal in (SessionStatus.ENDED, SessionStatus.CANCELLED):
        session.status = terminal
        assert not session.is_joinable
        assert not any(session.can_transition_to(s) for s in SessionStatus)


def test_participant_presence_flag() -> None:
    participant = SessionParticipant(id="p1", session_id=1, user=ALICE)
    assert participant.is_present
    participant.left_at = participant.joined_at
    assert not participant.is_present


def test_identity_display_name_falls_back_to_email() -> None:
    assert ALICE.display_name == "Alice"
    assert FREE_USER.display_name == "free@example.com"
    assert Identity(user_id=9, name="", email="").display_name == "User"


def test_chat_message_wire_shape() -> None:
    first = ChatMessage.compose(42, ALICE, "hello")
    second = ChatMessage.compose(42, ALICE, "hello")
    wire = first.to_wire()

    assert wire["sessionId"] == 42
    assert wire["userId"] == ALICE.user_id
    assert wire["userName"] == "Alice"
    assert wire["message"] == "hello"
    assert datetime.fromisoformat(wire["timestamp"]) == first.timestamp
    assert first.id != second.id


def test_room_payload_accepts_camel_case_and_numeric_strings() -> None:
    assert RoomPayload.model_validate({"sessionId": "42"}).session_id == 42
    assert room_name(42) == "session:42"
    assert presence_payload(ALICE) == {"user": {"id": 2, "name": "Alice", "email": "alice@example.com"}}
