from typing import Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel
from chat_store.models.participant import MemberRole


class ParticipantCreate(BaseModel):
    conversation_id: UUID
    participant_id: UUID
    role: MemberRole = MemberRole.member
    joined_at: Optional[datetime] = None


class ParticipantResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    participant_id: UUID
    role: MemberRole
    joined_at: datetime
    left_at: Optional[datetime] = None

    class Config:
        from_attributes = True
