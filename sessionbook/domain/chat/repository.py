"""Chat repository - Database operations for chat sessions and messages"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import ChatMessage, ChatSession


class ChatRepository:
    """Repository for chat database operations"""

    @staticmethod
    def get_session(db: Session, chat_id: str) -> Optional[ChatSession]:
        return db.query(ChatSession).filter(ChatSession.id == chat_id).first()

    @staticmethod
    def upsert_session(db: Session, chat_id: str, **fields) -> ChatSession:
        """Create the session row or overwrite the given fields (merge write)"""
        session = ChatRepository.get_session(db, chat_id)
        if session is None:
            session = ChatSession(id=chat_id, **fields)
            db.add(session)
        else:
            for key, value in fields.items():
                setattr(session, key, value)
        db.flush()
        return session

    @staticmethod
    def add_message(db: Session, chat_id: str, **message_data) -> ChatMessage:
        message = ChatMessage(chat_id=chat_id, **message_data)
        db.add(message)
        db.flush()
        return message

    @staticmethod
    def list_admin_sessions(db: Session, admin_uid: str) -> list[ChatSession]:
        """Sessions for the admin, most recent message first (never-messaged last)"""
        sessions = db.query(ChatSession).filter(ChatSession.admin_uid == admin_uid).all()
        return sorted(
            sessions,
            key=lambda s: (s.last_message_at is not None, s.last_message_at or s.created_at),
            reverse=True,
        )

    @staticmethod
    def list_messages(db: Session, chat_id: str) -> list[ChatMessage]:
        return (
            db.query(ChatMessage)
            .filter(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
            .all()
        )
