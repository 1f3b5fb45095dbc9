import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp (stored as-is by every backend)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AvailabilityTemplate(Base):
    """Weekly recurring availability, one row per provider"""

    __tablename__ = "availability_templates"

    provider_id = Column(String(128), primary_key=True)
    # {"0": ["09:00", ...], ..., "6": [...]} - Sunday-indexed day keys
    template = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AvailabilityOverride(Base):
    """Explicit slot list for one provider on one date"""

    __tablename__ = "availability_overrides"

    provider_id = Column(String(128), primary_key=True)
    date = Column(String(10), primary_key=True)  # YYYY-MM-DD
    slots = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    provider_id = Column(String(128), index=True, nullable=False)
    user_id = Column(String(128), nullable=False)  # Anonymous requester id
    name = Column(String(255), nullable=False)
    surname = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    service_type = Column(String(20), nullable=False)  # coaching, consultation
    meeting_type = Column(String(20), nullable=False)  # online, in-person
    problem_description = Column(Text, nullable=False)
    status = Column(
        String(20), default="pending", index=True, nullable=False
    )  # pending, confirmed, completed, cancelled
    meeting_url = Column(String(500), nullable=True)
    # {"url", "key", "fileName", "fileType"} once the upload finished
    payment_proof = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    slots = relationship(
        "ServiceRequestSlot",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ServiceRequestSlot.id",
    )

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip()


class ServiceRequestSlot(Base):
    __tablename__ = "service_request_slots"
    __table_args__ = (Index("ix_service_request_slots_provider_date", "provider_id", "date"),)

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(
        String(36), ForeignKey("service_requests.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # Denormalized from the request so booked times can be looked up per provider/date
    provider_id = Column(String(128), nullable=False)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    time = Column(String(5), nullable=False)  # HH:MM

    request = relationship("ServiceRequest", back_populates="slots")


class WebRTCSession(Base):
    """Signaling room shared by the two peers of a video call"""

    __tablename__ = "webrtc_sessions"

    room_id = Column(String(128), primary_key=True)
    caller_id = Column(String(128), nullable=False)  # Winner of the creation handshake
    callee_id = Column(String(128), nullable=True)
    offer = Column(JSON, nullable=True)  # {"type": "offer", "sdp": "..."}
    answer = Column(JSON, nullable=True)  # {"type": "answer", "sdp": "..."}
    # Presence flags live in separate columns so each peer only ever writes its own
    admin_present = Column(Boolean, default=False, nullable=False)
    guest_present = Column(Boolean, default=False, nullable=False)
    ended = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, default=1, nullable=False)  # Compare-and-set counter for resets
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    candidates = relationship(
        "WebRTCSessionCandidate",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="WebRTCSessionCandidate.id",
    )


class WebRTCSessionCandidate(Base):
    """Append-only ICE candidate log; side is "offer" (caller) or "answer" (callee)"""

    __tablename__ = "webrtc_session_candidates"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(
        String(128),
        ForeignKey("webrtc_sessions.room_id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    side = Column(String(6), nullable=False)
    candidate = Column(JSON, nullable=False)  # RTCIceCandidate.toJSON()
    created_at = Column(DateTime, default=utcnow)

    session = relationship("WebRTCSession", back_populates="candidates")


class VideoConsult(Base):
    """History record for in-app video consultations scheduled by the admin"""

    __tablename__ = "video_consults"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    room_id = Column(String(128), index=True, nullable=False)
    service_request_id = Column(String(36), index=True, nullable=False)
    user_id = Column(String(128), nullable=False)
    user_name = Column(String(255), nullable=False)
    provider_id = Column(String(128), nullable=False)
    provider_name = Column(String(255), nullable=True)
    status = Column(String(20), default="scheduled", nullable=False)  # scheduled, completed, cancelled
    created_at = Column(DateTime, default=utcnow)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String(300), primary_key=True)  # Sorted participant uids joined by "_"
    client_uid = Column(String(128), nullable=False)
    client_name = Column(String(255), nullable=True)
    admin_uid = Column(String(128), index=True, nullable=False)
    admin_name = Column(String(255), nullable=True)
    last_message_text = Column(Text, nullable=True)
    last_message_sender_id = Column(String(128), nullable=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(
        String(300), ForeignKey("chat_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    sender_id = Column(String(128), nullable=False)
    receiver_id = Column(String(128), nullable=False)
    sender_name = Column(String(255), nullable=False)
    text = Column(Text, nullable=True)
    image_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    session = relationship("ChatSession", back_populates="messages")
