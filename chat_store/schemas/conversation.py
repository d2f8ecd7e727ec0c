from typing import Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from chat_store.models.conversation import ConversationType
from chat_store.schemas.message import LastMessage


class ConversationCreate(BaseModel):
    id: Optional[UUID] = None
    type: ConversationType = ConversationType.group
    creator_id: UUID
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    is_private: bool = False
    max_members: int = Field(default=0, ge=0, le=10000)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None


class ConversationResponse(BaseModel):
    id: UUID
    type: ConversationType
    creator_id: UUID
    name: Optional[str] = None
    description: Optional[str] = None
    is_private: bool = False
    max_members: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ConversationWithUnread(ConversationResponse):
    unread_count: int = 0
    last_message: Optional[LastMessage] = None
