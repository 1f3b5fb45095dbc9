"""Call signaling schemas - room snapshots, claims and request bodies"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel

CandidateSide = Literal["offer", "answer"]
PeerRole = Literal["caller", "callee"]


class RoomState(str, Enum):
    """Derived signaling state of a room"""

    EMPTY = "empty"
    OFFERED = "offered"
    ANSWERED = "answered"
    ENDED = "ended"


def is_valid_description(value: Any, expected_type: Optional[str] = None) -> bool:
    """An SDP description needs a non-empty type and sdp (and the expected type, if given)"""
    if not isinstance(value, dict):
        return False
    description_type = value.get("type")
    sdp = value.get("sdp")
    if not isinstance(description_type, str) or not description_type:
        return False
    if not isinstance(sdp, str) or not sdp:
        return False
    return expected_type is None or description_type == expected_type


def derive_room_state(offer: Any, answer: Any, ended: bool) -> RoomState:
    if ended:
        return RoomState.ENDED
    if not is_valid_description(offer, "offer"):
        return RoomState.EMPTY
    if is_valid_description(answer, "answer"):
        return RoomState.ANSWERED
    return RoomState.OFFERED


class RoomSnapshot(BaseModel):
    """Wire view of a signaling room"""

    roomId: str
    callerId: str
    calleeId: Optional[str] = None
    offer: Optional[dict] = None
    answer: Optional[dict] = None
    participants: dict[str, bool]
    ended: bool
    version: int
    state: RoomState

    @classmethod
    def from_model(cls, room) -> "RoomSnapshot":
        return cls(
            roomId=room.room_id,
            callerId=room.caller_id,
            calleeId=room.callee_id,
            offer=room.offer,
            answer=room.answer,
            participants={"admin": bool(room.admin_present), "guest": bool(room.guest_present)},
            ended=bool(room.ended),
            version=room.version,
            state=derive_room_state(room.offer, room.answer, bool(room.ended)),
        )


class RoomClaim(BaseModel):
    """Outcome of joining a room: the role is read back from the stored room"""

    roomId: str
    peerId: str
    role: PeerRole
    room: RoomSnapshot


class CandidateRecord(BaseModel):
    id: int
    side: CandidateSide
    candidate: dict


class DescriptionRequest(BaseModel):
    description: dict


class CandidateRequest(BaseModel):
    candidate: dict


class PresenceRequest(BaseModel):
    present: bool
