from sqlalchemy import Column, String, DateTime, Boolean, Integer, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from chat_store.db.session import Base
from chat_store.utils.timeutils import utcnow
from enum import Enum
import uuid


class ConversationType(str, Enum):
    direct = 'direct'
    group = 'group'


def direct_key_for(participant_a: uuid.UUID, participant_b: uuid.UUID) -> str:
    """Canonical, order-independent key for the pair of a direct conversation."""
    first, second = sorted([str(participant_a), str(participant_b)])
    return f"{first}:{second}"


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(SAEnum(ConversationType, name="conversation_type"), nullable=False, default=ConversationType.group)
    creator_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    description = Column(String(500), nullable=True)
    is_private = Column(Boolean, nullable=False, default=False)
    max_members = Column(Integer, nullable=False, default=0)
    # Only set for direct conversations; the unique index keeps one per pair
    direct_key = Column(String(73), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    participants = relationship("Participant", back_populates="conversation", passive_deletes=True)
    messages = relationship("Message", back_populates="conversation", passive_deletes=True)

    def __repr__(self):
        return f"<Conversation id={self.id} type={self.type}>"
