"""Signaling room repository - Database operations for webrtc_sessions"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import WebRTCSession, WebRTCSessionCandidate, utcnow


class RoomRepository:
    """Repository for signaling room database operations"""

    @staticmethod
    def get_room(db: Session, room_id: str) -> Optional[WebRTCSession]:
        return db.query(WebRTCSession).filter(WebRTCSession.room_id == room_id).first()

    @staticmethod
    def insert_room(db: Session, room_id: str, caller_id: str) -> bool:
        """
        Create a fresh room with the given caller.
        Returns False if the room already exists (another peer won the race).
        """
        db.add(WebRTCSession(room_id=room_id, caller_id=caller_id))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True

    @staticmethod
    def reset_room(db: Session, room_id: str, expected_version: int, caller_id: str) -> bool:
        """
        Compare-and-set reset of a stale room: clears offer, answer, candidates
        and the ended flag, and installs a new caller. Returns False if the room
        changed since it was read.
        """
        updated = (
            db.query(WebRTCSession)
            .filter(WebRTCSession.room_id == room_id, WebRTCSession.version == expected_version)
            .update(
                {
                    WebRTCSession.caller_id: caller_id,
                    WebRTCSession.callee_id: None,
                    WebRTCSession.offer: None,
                    WebRTCSession.answer: None,
                    WebRTCSession.ended: False,
                    WebRTCSession.version: WebRTCSession.version + 1,
                    WebRTCSession.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            db.rollback()
            return False

        db.query(WebRTCSessionCandidate).filter(
            WebRTCSessionCandidate.room_id == room_id
        ).delete(synchronize_session=False)
        db.commit()
        db.expire_all()
        return True

    @staticmethod
    def update_room(db: Session, room: WebRTCSession, **updates) -> WebRTCSession:
        """Write only the given columns"""
        for key, value in updates.items():
            setattr(room, key, value)
        room.updated_at = utcnow()
        db.commit()
        db.refresh(room)
        return room

    @staticmethod
    def add_candidate(
        db: Session, room_id: str, side: str, candidate: dict
    ) -> WebRTCSessionCandidate:
        row = WebRTCSessionCandidate(room_id=room_id, side=side, candidate=candidate)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def list_candidates(
        db: Session, room_id: str, side: Optional[str] = None, after_id: int = 0
    ) -> list[WebRTCSessionCandidate]:
        """Candidates in append order, optionally for one side and after a known id"""
        query = db.query(WebRTCSessionCandidate).filter(
            WebRTCSessionCandidate.room_id == room_id, WebRTCSessionCandidate.id > after_id
        )
        if side:
            query = query.filter(WebRTCSessionCandidate.side == side)
        return query.order_by(WebRTCSessionCandidate.id.asc()).all()

    @staticmethod
    def delete_stale_rooms(db: Session, cutoff: datetime) -> int:
        """Delete rooms that ended or were last touched before the cutoff"""
        rooms = (
            db.query(WebRTCSession)
            .filter(or_(WebRTCSession.ended.is_(True), WebRTCSession.updated_at < cutoff))
            .all()
        )
        for room in rooms:
            db.delete(room)
        db.commit()
        return len(rooms)
