"""Chat router - FastAPI endpoints for client/admin messaging"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_admin_uid, get_current_uid, require_admin
from ...database import get_db
from .schemas import ChatSessionResponse, MessageCreate, MessageResponse, SessionOpen
from .service import DEFAULT_CLIENT_NAME, ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


def get_chat_service(
    db: Session = Depends(get_db), admin_uid: str = Depends(get_admin_uid)
) -> ChatService:
    """Dependency injection for ChatService"""
    return ChatService(db, admin_uid)


def _session_response(session) -> ChatSessionResponse:
    return ChatSessionResponse(
        chatId=session.id,
        clientUid=session.client_uid,
        clientName=session.client_name or DEFAULT_CLIENT_NAME,
        lastMessageText=session.last_message_text or "",
        lastMessageTimestamp=session.last_message_at,
        lastMessageSenderId=session.last_message_sender_id or "",
    )


@router.post("/messages")
async def send_message(
    data: MessageCreate,
    uid: str = Depends(get_current_uid),
    service: ChatService = Depends(get_chat_service),
):
    """Send a message as the authenticated user"""
    message = service.send_message(uid, data.receiverId, data.senderName, data.text, data.imageUrl)
    return {"success": True, "messageId": message.id}


@router.get("/sessions", response_model=list[ChatSessionResponse])
async def list_admin_sessions(
    admin_uid: str = Depends(require_admin),
    service: ChatService = Depends(get_chat_service),
):
    """Admin inbox, most recent conversation first"""
    return [_session_response(s) for s in service.list_admin_sessions(admin_uid)]


@router.post("/sessions", response_model=ChatSessionResponse)
async def open_session(
    data: SessionOpen,
    admin_uid: str = Depends(require_admin),
    service: ChatService = Depends(get_chat_service),
):
    """Start a conversation with a client from the admin side"""
    return _session_response(service.open_session_from_admin(data.clientUid, data.clientName))


@router.get("/{chat_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    chat_id: str,
    uid: str = Depends(get_current_uid),
    service: ChatService = Depends(get_chat_service),
):
    return [
        MessageResponse(
            id=m.id,
            chatId=m.chat_id,
            senderId=m.sender_id,
            receiverId=m.receiver_id,
            senderName=m.sender_name,
            text=m.text,
            imageUrl=m.image_url,
            timestamp=m.created_at,
        )
        for m in service.list_messages(chat_id, uid)
    ]
