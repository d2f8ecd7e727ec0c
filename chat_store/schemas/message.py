from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from uuid import UUID
from chat_store.models.message import MessageType

MAX_CONTENT_LENGTH = 4000


class MessageCreate(BaseModel):
    id: Optional[UUID] = None
    conversation_id: UUID
    sender_id: UUID
    content: str = Field(..., max_length=MAX_CONTENT_LENGTH)
    type: MessageType = MessageType.text
    parent_id: Optional[UUID] = None

    @field_validator('content', mode='before')
    @classmethod
    def validate_content(cls, value):
        """Decode bytes as UTF-8 and reject bodies that are only whitespace"""
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='replace')
        if value is None or not str(value).strip():
            raise ValueError('Message content is required')
        return value


class LastMessage(BaseModel):
    id: UUID
    sender_id: UUID
    content: str
    type: MessageType
    created_at: datetime

    class Config:
        from_attributes = True


class MessageResponse(LastMessage):
    conversation_id: UUID
    parent_id: Optional[UUID] = None
    edited_at: Optional[datetime] = None
    updated_at: datetime
