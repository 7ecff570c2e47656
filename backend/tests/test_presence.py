from conftest import ALICE, BOB
from models.protocol import RoomMembership
from services.presence import PresenceRegistry


def test_set_replaces_previous_membership_for_same_connection() -> None:
    registry = PresenceRegistry()
    assert registry.set("sid-a", RoomMembership(session_id=1, identity=ALICE)) is None

    previous = registry.set("sid-a", RoomMembership(session_id=2, identity=ALICE))

    assert previous is not None and previous.session_id == 1
    assert len(registry) == 1
    assert registry.get("sid-a").session_id == 2
    assert registry.members_of(1) == []


def test_members_of_filters_by_session() -> None:
    registry = PresenceRegistry()
    registry.set("sid-a", RoomMembership(session_id=42, identity=ALICE))
    registry.set("sid-b", RoomMembership(session_id=42, identity=BOB))
    registry.set("sid-c", RoomMembership(session_id=7, identity=BOB))

    assert {m.identity.user_id for m in registry.members_of(42)} == {ALICE.user_id, BOB.user_id}
    assert sorted(registry.sids_in(42)) == ["sid-a", "sid-b"]
    assert "sid-c" in registry


def test_remove_returns_entry_once() -> None:
    registry = PresenceRegistry()
    registry.set("sid-a", RoomMembership(session_id=42, identity=ALICE))

    assert registry.remove("sid-a").identity == ALICE
    assert registry.remove("sid-a") is None
    assert "sid-a" not in registry
