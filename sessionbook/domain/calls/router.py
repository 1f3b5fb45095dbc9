"""Call signaling router - REST and WebSocket access to signaling rooms"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ...auth import get_admin_uid, get_current_uid, get_socket_uid
from ...config import ICE_SERVERS
from ...database import get_db
from ...shared.errors import NotFoundError, SessionBookError, ValidationError
from .events import RoomEventBus, get_room_event_bus
from .schemas import (
    CandidateRecord,
    CandidateRequest,
    DescriptionRequest,
    PresenceRequest,
    RoomClaim,
    RoomSnapshot,
)
from .service import RoomService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calls", tags=["Calls"])


def get_room_service(
    db: Session = Depends(get_db),
    admin_uid: str = Depends(get_admin_uid),
    bus: RoomEventBus = Depends(get_room_event_bus),
) -> RoomService:
    """Dependency injection for RoomService"""
    return RoomService(db, admin_uid, bus)


@router.get("/ice-servers")
async def get_ice_servers():
    """STUN/TURN servers peers should use"""
    return {"iceServers": ICE_SERVERS}


# ============================================================================
# ROOM REST API
# ============================================================================


@router.post("/rooms/{room_id}/claim", response_model=RoomClaim)
async def claim_room(
    room_id: str,
    uid: str = Depends(get_current_uid),
    service: RoomService = Depends(get_room_service),
):
    """Join a room; the response says whether this peer is caller or callee"""
    return service.claim_room(room_id, uid)


@router.get("/rooms/{room_id}", response_model=RoomSnapshot, dependencies=[Depends(get_current_uid)])
async def get_room(room_id: str, service: RoomService = Depends(get_room_service)):
    return service.get_room(room_id)


@router.put("/rooms/{room_id}/offer", response_model=RoomSnapshot)
async def write_offer(
    room_id: str,
    data: DescriptionRequest,
    uid: str = Depends(get_current_uid),
    service: RoomService = Depends(get_room_service),
):
    return service.write_offer(room_id, uid, data.description)


@router.put("/rooms/{room_id}/answer", response_model=RoomSnapshot)
async def write_answer(
    room_id: str,
    data: DescriptionRequest,
    uid: str = Depends(get_current_uid),
    service: RoomService = Depends(get_room_service),
):
    return service.write_answer(room_id, uid, data.description)


@router.post("/rooms/{room_id}/candidates", response_model=CandidateRecord)
async def add_candidate(
    room_id: str,
    data: CandidateRequest,
    uid: str = Depends(get_current_uid),
    service: RoomService = Depends(get_room_service),
):
    return service.add_candidate(room_id, uid, data.candidate)


@router.get(
    "/rooms/{room_id}/candidates",
    response_model=list[CandidateRecord],
    dependencies=[Depends(get_current_uid)],
)
async def list_candidates(
    room_id: str,
    side: Optional[str] = Query(None, description="offer or answer"),
    after: int = Query(0, ge=0, description="Only candidates with a larger id"),
    service: RoomService = Depends(get_room_service),
):
    return service.list_candidates(room_id, side, after)


@router.put("/rooms/{room_id}/presence", response_model=RoomSnapshot)
async def set_presence(
    room_id: str,
    data: PresenceRequest,
    uid: str = Depends(get_current_uid),
    service: RoomService = Depends(get_room_service),
):
    return service.set_presence(room_id, uid, data.present)


@router.post("/rooms/{room_id}/end", response_model=RoomSnapshot)
async def end_room(
    room_id: str,
    uid: str = Depends(get_current_uid),
    service: RoomService = Depends(get_room_service),
):
    """Hang up: mark the room ended for both peers"""
    return service.end_room(room_id, uid)


# ============================================================================
# ROOM WEBSOCKET
# ============================================================================


def _dispatch(service: RoomService, room_id: str, peer_id: str, message: dict) -> dict:
    """Apply one client action and build its acknowledgement"""
    # The socket holds one session for its lifetime; drop rows the other peer may have changed
    service.db.expire_all()
    action = message.get("action")

    if action == "claim":
        result = service.claim_room(room_id, peer_id)
    elif action == "offer":
        result = service.write_offer(room_id, peer_id, message.get("description"))
    elif action == "answer":
        result = service.write_answer(room_id, peer_id, message.get("description"))
    elif action == "candidate":
        result = service.add_candidate(room_id, peer_id, message.get("candidate"))
    elif action == "presence":
        result = service.set_presence(room_id, peer_id, bool(message.get("present")))
    elif action == "hangup":
        result = service.end_room(room_id, peer_id)
    else:
        raise ValidationError.for_field("action", f"Unknown action: {action!r}")

    return {"type": "ack", "action": action, "result": result.model_dump(mode="json")}


@router.websocket("/rooms/{room_id}/ws")
async def room_socket(
    websocket: WebSocket,
    room_id: str,
    uid: str = Depends(get_socket_uid),
    service: RoomService = Depends(get_room_service),
):
    """
    Stream room events to a peer and accept its signaling actions.
    Messages look like {"action": "offer", "description": {...}}.
    """
    await websocket.accept()
    loop = asyncio.get_running_loop()
    outgoing: asyncio.Queue = asyncio.Queue()

    def on_event(event: dict) -> None:
        loop.call_soon_threadsafe(outgoing.put_nowait, event)

    async def pump() -> None:
        while True:
            await websocket.send_json(await outgoing.get())

    unsubscribe = service.subscribe(room_id, on_event)
    sender = asyncio.create_task(pump())
    logger.info(f"🔌 Peer {uid} connected to room {room_id}")

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                outgoing.put_nowait({"type": "error", "error": "Messages must be JSON objects"})
                continue
            try:
                outgoing.put_nowait(_dispatch(service, room_id, uid, message))
            except SessionBookError as e:
                outgoing.put_nowait(
                    {"type": "error", "action": message.get("action"), "error": e.message}
                )
    except WebSocketDisconnect:
        logger.info(f"🔌 Peer {uid} disconnected from room {room_id}")
    finally:
        unsubscribe()
        sender.cancel()
        service.db.expire_all()
        try:
            service.set_presence(room_id, uid, False)
        except NotFoundError:
            logger.debug(f"Room {room_id} is gone, no presence to clear for {uid}")
