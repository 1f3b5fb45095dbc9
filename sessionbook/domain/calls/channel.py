"""Signaling channels used by a call session to reach its room"""

import logging
from typing import Callable, Protocol

from ...database import SessionLocal
from .events import RoomEventBus, RoomEventCallback, room_event_bus
from .schemas import CandidateRecord, RoomClaim, RoomSnapshot
from .service import RoomService

logger = logging.getLogger(__name__)


class SignalingChannel(Protocol):
    async def claim(self, room_id: str, peer_id: str) -> RoomClaim: ...

    async def write_offer(self, room_id: str, peer_id: str, description: dict) -> RoomSnapshot: ...

    async def write_answer(self, room_id: str, peer_id: str, description: dict) -> RoomSnapshot: ...

    async def add_candidate(self, room_id: str, peer_id: str, candidate: dict) -> CandidateRecord: ...

    async def set_presence(self, room_id: str, peer_id: str, present: bool) -> RoomSnapshot: ...

    async def end(self, room_id: str, peer_id: str) -> RoomSnapshot: ...

    def subscribe(self, room_id: str, callback: RoomEventCallback) -> Callable[[], None]:
        """Room events (initial snapshot and candidates first); returns unsubscribe"""
        ...


class LocalSignalingChannel:
    """Channel backed directly by RoomService, one database session per operation"""

    def __init__(
        self,
        admin_uid: str,
        bus: RoomEventBus = room_event_bus,
        session_factory=SessionLocal,
    ):
        self.admin_uid = admin_uid
        self.bus = bus
        self.session_factory = session_factory

    def _run(self, operation: Callable[[RoomService], object]):
        db = self.session_factory()
        try:
            return operation(RoomService(db, self.admin_uid, self.bus))
        finally:
            db.close()

    async def claim(self, room_id: str, peer_id: str) -> RoomClaim:
        return self._run(lambda rooms: rooms.claim_room(room_id, peer_id))

    async def write_offer(self, room_id: str, peer_id: str, description: dict) -> RoomSnapshot:
        return self._run(lambda rooms: rooms.write_offer(room_id, peer_id, description))

    async def write_answer(self, room_id: str, peer_id: str, description: dict) -> RoomSnapshot:
        return self._run(lambda rooms: rooms.write_answer(room_id, peer_id, description))

    async def add_candidate(self, room_id: str, peer_id: str, candidate: dict) -> CandidateRecord:
        return self._run(lambda rooms: rooms.add_candidate(room_id, peer_id, candidate))

    async def set_presence(self, room_id: str, peer_id: str, present: bool) -> RoomSnapshot:
        return self._run(lambda rooms: rooms.set_presence(room_id, peer_id, present))

    async def end(self, room_id: str, peer_id: str) -> RoomSnapshot:
        return self._run(lambda rooms: rooms.end_room(room_id, peer_id))

    def subscribe(self, room_id: str, callback: RoomEventCallback) -> Callable[[], None]:
        return self._run(lambda rooms: rooms.subscribe(room_id, callback))
