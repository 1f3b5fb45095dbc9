"""Tests for signaling rooms: roles, offer/answer exchange, presence and events."""

from datetime import timedelta

import pytest

from sessionbook.domain.calls.events import RoomEventBus, candidate_event
from sessionbook.domain.calls.schemas import RoomState, derive_room_state
from sessionbook.domain.calls.service import RoomService
from sessionbook.models import WebRTCSession, WebRTCSessionCandidate, utcnow
from sessionbook.shared.errors import NotFoundError, SignalingProtocolError, ValidationError
from tests.conftest import ADMIN_UID, TestingSessionLocal

ROOM = "request-123"
GUEST = "guest-1"
OFFER = {"type": "offer", "sdp": "v=0 offer"}
ANSWER = {"type": "answer", "sdp": "v=0 answer"}
CANDIDATE = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.1 50001 typ host", "sdpMid": "0"}


@pytest.fixture
def rooms(db, bus):
    return RoomService(db, ADMIN_UID, bus)


@pytest.fixture
def guest_rooms(db, bus):
    """A second peer talking to the same database through its own session."""
    session = TestingSessionLocal()
    try:
        yield RoomService(session, ADMIN_UID, bus)
    finally:
        session.close()


class TestRoleAssignment:
    def test_first_claimant_is_caller(self, rooms):
        claim = rooms.claim_room(ROOM, ADMIN_UID)
        assert claim.role == "caller"
        assert claim.room.callerId == ADMIN_UID
        assert claim.room.state == RoomState.EMPTY

    def test_second_claimant_is_callee(self, rooms, guest_rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        claim = guest_rooms.claim_room(ROOM, GUEST)
        assert claim.role == "callee"
        assert claim.room.callerId == ADMIN_UID
        assert claim.room.calleeId == GUEST

    def test_role_does_not_depend_on_admin_identity(self, rooms, guest_rooms):
        assert rooms.claim_room(ROOM, GUEST).role == "caller"
        assert guest_rooms.claim_room(ROOM, ADMIN_UID).role == "callee"

    def test_callee_rejoin_keeps_roles(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.claim_room(ROOM, GUEST)
        assert rooms.claim_room(ROOM, GUEST).role == "callee"

    def test_caller_rejoin_resets_room(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)
        rooms.add_candidate(ROOM, ADMIN_UID, CANDIDATE)

        claim = rooms.claim_room(ROOM, ADMIN_UID)

        assert claim.role == "caller"
        assert claim.room.offer is None
        assert claim.room.version == 2
        assert rooms.list_candidates(ROOM) == []

    def test_ended_room_is_reset_on_claim(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)
        rooms.end_room(ROOM, ADMIN_UID)

        claim = rooms.claim_room(ROOM, GUEST)

        assert claim.role == "caller"
        assert claim.room.ended is False
        assert claim.room.offer is None
        assert claim.room.calleeId is None

    def test_malformed_offer_is_reset_on_claim(self, rooms, db):
        db.add(WebRTCSession(room_id=ROOM, caller_id="someone", offer={"sdp": "missing type"}))
        db.commit()

        claim = rooms.claim_room(ROOM, GUEST)

        assert claim.role == "caller"
        assert claim.room.offer is None

    def test_stale_reset_loses_to_concurrent_writer(self, rooms, db):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.end_room(ROOM, ADMIN_UID)
        room = db.query(WebRTCSession).one()

        assert rooms.repo.reset_room(db, ROOM, room.version + 1, GUEST) is False
        assert rooms.repo.reset_room(db, ROOM, room.version, GUEST) is True

    def test_ids_required(self, rooms):
        with pytest.raises(ValidationError):
            rooms.claim_room(ROOM, "  ")


class TestOfferAnswer:
    def test_exchange(self, rooms, guest_rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        guest_rooms.claim_room(ROOM, GUEST)

        assert rooms.write_offer(ROOM, ADMIN_UID, OFFER).state == RoomState.OFFERED
        snapshot = guest_rooms.write_answer(ROOM, GUEST, ANSWER)

        assert snapshot.state == RoomState.ANSWERED
        assert snapshot.offer == OFFER
        assert snapshot.answer == ANSWER

    def test_callee_cannot_write_offer(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.claim_room(ROOM, GUEST)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)

        with pytest.raises(SignalingProtocolError):
            rooms.write_offer(ROOM, GUEST, {"type": "offer", "sdp": "v=0 hijack"})
        assert rooms.get_room(ROOM).offer == OFFER

    def test_caller_cannot_answer(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)
        with pytest.raises(SignalingProtocolError):
            rooms.write_answer(ROOM, ADMIN_UID, ANSWER)

    def test_answer_needs_an_offer(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.claim_room(ROOM, GUEST)
        with pytest.raises(SignalingProtocolError):
            rooms.write_answer(ROOM, GUEST, ANSWER)

    def test_answer_on_missing_room(self, rooms):
        with pytest.raises(NotFoundError):
            rooms.write_answer("nowhere", GUEST, ANSWER)

    @pytest.mark.parametrize(
        "description",
        [{"type": "answer", "sdp": "v=0"}, {"type": "offer"}, {"type": "offer", "sdp": ""}, {}],
    )
    def test_malformed_offer_rejected(self, rooms, description):
        rooms.claim_room(ROOM, ADMIN_UID)
        with pytest.raises(SignalingProtocolError):
            rooms.write_offer(ROOM, ADMIN_UID, description)

    def test_malformed_answer_rejected(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.claim_room(ROOM, GUEST)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)
        with pytest.raises(SignalingProtocolError):
            rooms.write_answer(ROOM, GUEST, {"type": "offer", "sdp": "v=0"})

    def test_answer_records_callee(self, rooms, db):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)
        assert rooms.write_answer(ROOM, GUEST, ANSWER).calleeId == GUEST

    def test_writes_rejected_after_end(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.end_room(ROOM, ADMIN_UID)
        with pytest.raises(SignalingProtocolError):
            rooms.write_offer(ROOM, ADMIN_UID, OFFER)


class TestCandidates:
    def test_side_follows_role(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.claim_room(ROOM, GUEST)

        assert rooms.add_candidate(ROOM, ADMIN_UID, CANDIDATE).side == "offer"
        assert rooms.add_candidate(ROOM, GUEST, CANDIDATE).side == "answer"

    def test_list_by_side_and_after(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        first = rooms.add_candidate(ROOM, ADMIN_UID, CANDIDATE)
        second = rooms.add_candidate(ROOM, ADMIN_UID, {**CANDIDATE, "sdpMid": "1"})
        rooms.add_candidate(ROOM, GUEST, CANDIDATE)

        assert [c.id for c in rooms.list_candidates(ROOM, "offer")] == [first.id, second.id]
        assert [c.id for c in rooms.list_candidates(ROOM, "offer", first.id)] == [second.id]
        assert len(rooms.list_candidates(ROOM)) == 3

    def test_invalid_side(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        with pytest.raises(ValidationError):
            rooms.list_candidates(ROOM, "sideways")

    def test_candidate_needs_candidate_string(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        with pytest.raises(ValidationError):
            rooms.add_candidate(ROOM, ADMIN_UID, {"sdpMid": "0"})


class TestPresenceAndEnd:
    def test_presence_flags_are_per_peer(self, rooms, guest_rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        guest_rooms.claim_room(ROOM, GUEST)

        rooms.set_presence(ROOM, ADMIN_UID, True)
        guest_rooms.set_presence(ROOM, GUEST, True)
        assert rooms.get_room(ROOM).participants == {"admin": True, "guest": True}

        guest_rooms.set_presence(ROOM, GUEST, False)
        rooms.db.expire_all()
        assert rooms.get_room(ROOM).participants == {"admin": True, "guest": False}

    def test_presence_on_missing_room(self, rooms):
        with pytest.raises(NotFoundError):
            rooms.set_presence("nowhere", GUEST, True)

    def test_end_is_idempotent_and_keeps_row(self, rooms, db):
        rooms.claim_room(ROOM, ADMIN_UID)
        first = rooms.end_room(ROOM, ADMIN_UID)
        second = rooms.end_room(ROOM, GUEST)

        assert first.ended and second.ended
        assert first.version == second.version
        assert second.state == RoomState.ENDED
        assert db.query(WebRTCSession).count() == 1


class TestReaper:
    def test_reaps_ended_and_idle_rooms(self, rooms, db):
        rooms.claim_room("ended-room", ADMIN_UID)
        rooms.add_candidate("ended-room", ADMIN_UID, CANDIDATE)
        rooms.end_room("ended-room", ADMIN_UID)

        rooms.claim_room("idle-room", ADMIN_UID)
        idle = db.query(WebRTCSession).filter(WebRTCSession.room_id == "idle-room").one()
        idle.updated_at = utcnow() - timedelta(hours=30)
        db.commit()

        rooms.claim_room("live-room", ADMIN_UID)

        assert rooms.reap_stale_rooms(timedelta(hours=24)) == 2
        assert [r.room_id for r in db.query(WebRTCSession).all()] == ["live-room"]
        assert db.query(WebRTCSessionCandidate).count() == 0


class TestRoomState:
    def test_derived_states(self):
        assert derive_room_state(None, None, False) == RoomState.EMPTY
        assert derive_room_state({"sdp": "x"}, None, False) == RoomState.EMPTY
        assert derive_room_state(OFFER, None, False) == RoomState.OFFERED
        assert derive_room_state(OFFER, ANSWER, False) == RoomState.ANSWERED
        assert derive_room_state(OFFER, ANSWER, True) == RoomState.ENDED


class TestEvents:
    def test_subscriber_gets_snapshot_then_candidates_then_live(self, rooms):
        rooms.claim_room(ROOM, ADMIN_UID)
        rooms.write_offer(ROOM, ADMIN_UID, OFFER)
        stored = rooms.add_candidate(ROOM, ADMIN_UID, CANDIDATE)

        events = []
        unsubscribe = rooms.subscribe(ROOM, events.append)
        rooms.write_answer(ROOM, GUEST, ANSWER)

        assert [e["type"] for e in events] == ["room", "candidate", "room"]
        assert events[0]["room"]["offer"] == OFFER
        assert events[1]["id"] == stored.id
        assert events[2]["room"]["state"] == "answered"

        unsubscribe()
        rooms.end_room(ROOM, ADMIN_UID)
        assert len(events) == 3

    def test_subscribing_to_missing_room_sends_nothing(self, rooms):
        events = []
        rooms.subscribe(ROOM, events.append)
        assert events == []

        rooms.claim_room(ROOM, ADMIN_UID)
        assert [e["type"] for e in events] == ["room"]

    def test_broken_subscriber_does_not_block_others(self):
        bus = RoomEventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(ROOM, broken)
        bus.subscribe(ROOM, received.append)
        bus.publish(ROOM, candidate_event(1, "offer", CANDIDATE))

        assert len(received) == 1

    def test_unsubscribe_removes_room_entry(self):
        bus = RoomEventBus()
        unsubscribe = bus.subscribe(ROOM, lambda event: None)
        assert bus.subscriber_count(ROOM) == 1
        unsubscribe()
        unsubscribe()
        assert bus.subscriber_count(ROOM) == 0
