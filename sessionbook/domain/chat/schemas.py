"""Chat schemas - Pydantic models for messages and sessions"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...utils.sanitization import validate_and_sanitize_input


class MessageCreate(BaseModel):
    """Schema for sending a message; the sender comes from the auth token"""

    receiverId: str = Field(..., min_length=1, max_length=128)
    senderName: str = Field(..., min_length=1, max_length=255)
    text: Optional[str] = None
    imageUrl: Optional[str] = Field(None, max_length=1000)

    @field_validator("text")
    @classmethod
    def sanitize_text(cls, v):
        if v is None:
            return v
        return validate_and_sanitize_input(v, max_length=1000) or None

    @field_validator("imageUrl")
    @classmethod
    def validate_image_url(cls, v):
        if v and not v.startswith(("https://", "http://")):
            raise ValueError("Invalid image URL")
        return v or None

    @model_validator(mode="after")
    def require_content(self):
        if not self.text and not self.imageUrl:
            raise ValueError("A message needs text or an image")
        return self


class SessionOpen(BaseModel):
    clientUid: str = Field(..., min_length=1, max_length=128)
    clientName: str = Field(..., min_length=1, max_length=255)


class MessageResponse(BaseModel):
    id: int
    chatId: str
    senderId: str
    receiverId: str
    senderName: str
    text: Optional[str] = None
    imageUrl: Optional[str] = None
    timestamp: Optional[datetime] = None


class ChatSessionResponse(BaseModel):
    chatId: str
    clientUid: str
    clientName: str
    lastMessageText: str = ""
    lastMessageTimestamp: Optional[datetime] = None
    lastMessageSenderId: str = ""
