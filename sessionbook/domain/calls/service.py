"""Signaling room service - role assignment, offer/answer exchange, presence.

Two peers share one room row. The peer that creates (or resets) the row is
the caller and the only one allowed to write ``offer``; everyone else is a
callee. Each peer writes disjoint columns: ``offer`` vs ``answer``, its own
candidate side and its own presence flag.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models import WebRTCSession, utcnow
from ...shared.errors import NotFoundError, SignalingProtocolError, ValidationError
from .events import RoomEventBus, RoomEventCallback, candidate_event, room_event
from .repository import RoomRepository
from .schemas import (
    CandidateRecord,
    RoomClaim,
    RoomSnapshot,
    is_valid_description,
)

logger = logging.getLogger(__name__)

# Bound on claim retries when other peers keep winning the compare-and-set
MAX_CLAIM_ATTEMPTS = 5


def _is_stale(room: WebRTCSession) -> bool:
    """Ended rooms and rooms holding a malformed offer are recreated on claim"""
    if room.ended:
        return True
    return room.offer is not None and not is_valid_description(room.offer, "offer")


class RoomService:
    """Service layer for signaling rooms"""

    def __init__(self, db: Session, admin_uid: str, bus: RoomEventBus):
        self.db = db
        self.admin_uid = admin_uid
        self.bus = bus
        self.repo = RoomRepository()

    # ------------------------------------------------------------------
    # Role assignment
    # ------------------------------------------------------------------

    def claim_room(self, room_id: str, peer_id: str) -> RoomClaim:
        """
        Join a room and learn this peer's role.

        A missing room is created with this peer as caller; a primary-key
        conflict means another peer created it first. A stale room, or a room
        the caller is re-joining, is reset through a version compare-and-set.
        The role is always read back from the stored row.
        """
        self._require_ids(room_id, peer_id)

        for attempt in range(MAX_CLAIM_ATTEMPTS):
            room = self.repo.get_room(self.db, room_id)

            if room is None:
                if self.repo.insert_room(self.db, room_id, peer_id):
                    logger.info(f"📞 Room {room_id} created by caller {peer_id}")
                    room = self.repo.get_room(self.db, room_id)
                    self._publish_room(room)
                    return self._claim_for(room, peer_id)
                logger.info(f"Room {room_id} was created concurrently, re-reading")
                continue

            if _is_stale(room) or room.caller_id == peer_id:
                reason = "stale" if _is_stale(room) else "caller re-joining"
                if self.repo.reset_room(self.db, room_id, room.version, peer_id):
                    logger.info(f"🔄 Room {room_id} reset ({reason}), caller is now {peer_id}")
                    room = self.repo.get_room(self.db, room_id)
                    self._publish_room(room)
                    return self._claim_for(room, peer_id)
                logger.info(f"Room {room_id} changed during reset (attempt {attempt + 1}), retrying")
                continue

            if room.callee_id != peer_id:
                room = self.repo.update_room(self.db, room, callee_id=peer_id)
                self._publish_room(room)
            return self._claim_for(room, peer_id)

        logger.error(f"❌ Could not claim room {room_id} after {MAX_CLAIM_ATTEMPTS} attempts")
        raise SignalingProtocolError("Room is busy, please try joining again")

    def _claim_for(self, room: WebRTCSession, peer_id: str) -> RoomClaim:
        role = "caller" if room.caller_id == peer_id else "callee"
        return RoomClaim(
            roomId=room.room_id, peerId=peer_id, role=role, room=RoomSnapshot.from_model(room)
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_room(self, room_id: str) -> RoomSnapshot:
        return RoomSnapshot.from_model(self._get_room_or_404(room_id))

    def list_candidates(
        self, room_id: str, side: Optional[str] = None, after_id: int = 0
    ) -> list[CandidateRecord]:
        if side is not None and side not in ("offer", "answer"):
            raise ValidationError.for_field("side", "Side must be 'offer' or 'answer'")
        self._get_room_or_404(room_id)
        return [
            CandidateRecord(id=row.id, side=row.side, candidate=row.candidate)
            for row in self.repo.list_candidates(self.db, room_id, side, after_id)
        ]

    def subscribe(self, room_id: str, callback: RoomEventCallback) -> Callable[[], None]:
        """
        Subscribe to a room. The callback first receives the current snapshot
        (if the room exists) and every stored candidate, then live events.
        """

        def initial_events():
            self.db.expire_all()
            room = self.repo.get_room(self.db, room_id)
            if room is None:
                return []
            events = [room_event(RoomSnapshot.from_model(room).model_dump(mode="json"))]
            events.extend(
                candidate_event(row.id, row.side, row.candidate)
                for row in self.repo.list_candidates(self.db, room_id)
            )
            return events

        return self.bus.subscribe(room_id, callback, initial_events)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_offer(self, room_id: str, peer_id: str, description: dict) -> RoomSnapshot:
        """Caller only; touches nothing but the offer column"""
        room = self._get_live_room(room_id)
        if room.caller_id != peer_id:
            logger.warning(f"⚠️ Peer {peer_id} tried to write the offer in room {room_id}")
            raise SignalingProtocolError("Only the caller may write the offer")
        if not is_valid_description(description, "offer"):
            raise SignalingProtocolError("Offer must have type 'offer' and a non-empty sdp")

        room = self.repo.update_room(
            self.db, room, offer={"type": description["type"], "sdp": description["sdp"]}
        )
        logger.info(f"✅ Offer written to room {room_id}")
        return self._publish_room(room)

    def write_answer(self, room_id: str, peer_id: str, description: dict) -> RoomSnapshot:
        """Callee only, and only once a valid offer exists; never touches the offer"""
        room = self._get_live_room(room_id)
        if room.caller_id == peer_id:
            raise SignalingProtocolError("The caller cannot answer its own offer")
        if not is_valid_description(room.offer, "offer"):
            raise SignalingProtocolError("Room has no valid offer to answer")
        if not is_valid_description(description, "answer"):
            raise SignalingProtocolError("Answer must have type 'answer' and a non-empty sdp")

        updates = {"answer": {"type": description["type"], "sdp": description["sdp"]}}
        if room.callee_id is None:
            updates["callee_id"] = peer_id
        room = self.repo.update_room(self.db, room, **updates)
        logger.info(f"✅ Answer written to room {room_id} by {peer_id}")
        return self._publish_room(room)

    def add_candidate(self, room_id: str, peer_id: str, candidate: dict) -> CandidateRecord:
        """Append to the offer side for the caller, the answer side for anyone else"""
        if not isinstance(candidate, dict) or not isinstance(candidate.get("candidate"), str):
            raise ValidationError.for_field("candidate", "Candidate must include a candidate string")

        room = self._get_live_room(room_id)
        side = "offer" if room.caller_id == peer_id else "answer"
        row = self.repo.add_candidate(self.db, room_id, side, candidate)
        self.bus.publish(room_id, candidate_event(row.id, side, row.candidate))
        return CandidateRecord(id=row.id, side=side, candidate=row.candidate)

    def set_presence(self, room_id: str, peer_id: str, present: bool) -> RoomSnapshot:
        """Write only this peer's own presence flag"""
        room = self._get_room_or_404(room_id)
        column = "admin_present" if self.presence_key(peer_id) == "admin" else "guest_present"
        if getattr(room, column) == present:
            return RoomSnapshot.from_model(room)

        room = self.repo.update_room(self.db, room, **{column: present})
        logger.info(f"👤 {self.presence_key(peer_id)} {'joined' if present else 'left'} room {room_id}")
        return self._publish_room(room)

    def end_room(self, room_id: str, peer_id: str) -> RoomSnapshot:
        """Mark the room ended; idempotent, and the row is kept"""
        room = self._get_room_or_404(room_id)
        if room.ended:
            return RoomSnapshot.from_model(room)

        room = self.repo.update_room(self.db, room, ended=True)
        logger.info(f"📴 Room {room_id} ended by {peer_id}")
        return self._publish_room(room)

    def reap_stale_rooms(self, max_age: timedelta) -> int:
        """Delete ended rooms and rooms idle for longer than max_age"""
        deleted = self.repo.delete_stale_rooms(self.db, utcnow() - max_age)
        if deleted:
            logger.info(f"🧹 Reaped {deleted} stale signaling room(s)")
        return deleted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def presence_key(self, peer_id: str) -> str:
        return "admin" if self.admin_uid and peer_id == self.admin_uid else "guest"

    def _get_room_or_404(self, room_id: str) -> WebRTCSession:
        room = self.repo.get_room(self.db, room_id)
        if room is None:
            raise NotFoundError("Room not found")
        return room

    def _get_live_room(self, room_id: str) -> WebRTCSession:
        room = self._get_room_or_404(room_id)
        if room.ended:
            raise SignalingProtocolError("Room has ended")
        return room

    def _publish_room(self, room: WebRTCSession) -> RoomSnapshot:
        snapshot = RoomSnapshot.from_model(room)
        self.bus.publish(room.room_id, room_event(snapshot.model_dump(mode="json")))
        return snapshot

    @staticmethod
    def _require_ids(room_id: str, peer_id: str) -> None:
        if not room_id or not room_id.strip():
            raise ValidationError.for_field("roomId", "Room id is required")
        if not peer_id or not peer_id.strip():
            raise ValidationError.for_field("peerId", "Peer id is required")
