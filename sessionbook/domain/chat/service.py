"""Chat service - client/admin messaging"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import ADMIN_DISPLAY_NAME
from ...models import ChatMessage, ChatSession, utcnow
from ...shared.errors import PermissionDeniedError, ValidationError
from .repository import ChatRepository

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "Visitor"


def chat_id_for(uid1: str, uid2: str) -> str:
    """A conversation is keyed by both uids, sorted and joined with '_'"""
    return "_".join(sorted([uid1, uid2]))


def message_summary(text: Optional[str], image_url: Optional[str]) -> str:
    if image_url:
        return f"{text} (image)" if text else "Image"
    return text or ""


class ChatService:
    """Service layer for chat between the admin and clients"""

    def __init__(self, db: Session, admin_uid: str):
        self.db = db
        self.admin_uid = admin_uid
        self.repo = ChatRepository()

    def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        sender_name: str,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> ChatMessage:
        """Store a message and refresh the conversation summary"""
        if not text and not image_url:
            raise ValidationError.for_field("text", "A message needs text or an image")
        if sender_id == receiver_id:
            raise ValidationError.for_field("receiverId", "Cannot send a message to yourself")
        if self.admin_uid not in (sender_id, receiver_id):
            raise PermissionDeniedError("Conversations must include the admin")

        chat_id = chat_id_for(sender_id, receiver_id)
        sender_is_admin = sender_id == self.admin_uid
        client_uid = receiver_id if sender_is_admin else sender_id

        existing = self.repo.get_session(self.db, chat_id)
        if sender_is_admin:
            # The client's name is only known from their own messages
            client_name = (existing.client_name if existing else None) or DEFAULT_CLIENT_NAME
        else:
            client_name = sender_name

        now = utcnow()
        try:
            self.repo.upsert_session(
                self.db,
                chat_id,
                client_uid=client_uid,
                client_name=client_name,
                admin_uid=self.admin_uid,
                admin_name=ADMIN_DISPLAY_NAME,
                last_message_text=message_summary(text, image_url),
                last_message_sender_id=sender_id,
                last_message_at=now,
            )
            message = self.repo.add_message(
                self.db,
                chat_id,
                sender_id=sender_id,
                receiver_id=receiver_id,
                sender_name=sender_name,
                text=text,
                image_url=image_url,
                created_at=now,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error sending message in chat {chat_id}: {e}")
            raise

        self.db.refresh(message)
        logger.info(f"💬 Message {message.id} sent in chat {chat_id}")
        return message

    def list_admin_sessions(self, admin_uid: str) -> list[ChatSession]:
        if admin_uid != self.admin_uid:
            raise PermissionDeniedError("Unauthorized access to admin conversations")
        return self.repo.list_admin_sessions(self.db, admin_uid)

    def list_messages(self, chat_id: str, requester_uid: str) -> list[ChatMessage]:
        """Messages oldest first; only the two participants may read them"""
        # Every conversation is between the admin and one client
        if requester_uid != self.admin_uid and chat_id != chat_id_for(requester_uid, self.admin_uid):
            raise PermissionDeniedError("You are not part of this conversation")
        return self.repo.list_messages(self.db, chat_id)

    def open_session_from_admin(self, client_uid: str, client_name: str) -> ChatSession:
        """Make sure a conversation with the client exists before the admin writes"""
        if client_uid == self.admin_uid:
            raise ValidationError.for_field("clientUid", "Cannot open a conversation with yourself")

        chat_id = chat_id_for(client_uid, self.admin_uid)
        existing = self.repo.get_session(self.db, chat_id)
        if existing is not None:
            return existing

        session = self.repo.upsert_session(
            self.db,
            chat_id,
            client_uid=client_uid,
            client_name=client_name,
            admin_uid=self.admin_uid,
            admin_name=ADMIN_DISPLAY_NAME,
        )
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"💬 Admin opened chat {chat_id} with {client_uid}")
        return session
