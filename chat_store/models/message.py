from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid, Index
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from chat_store.db.session import Base
from chat_store.utils.timeutils import utcnow
import uuid
from enum import Enum


class MessageType(str, Enum):
    text = 'text'
    image = 'image'
    file = 'file'
    video = 'video'
    audio = 'audio'
    system = 'system'

class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey('conversations.id', ondelete="CASCADE"), nullable=False)
    sender_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    content = Column(Text, nullable=False)  # Text so emoji and long bodies fit
    type = Column(SAEnum(MessageType, name='message_type'), nullable=False, default=MessageType.text)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey('messages.id', ondelete="SET NULL"), nullable=True)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
