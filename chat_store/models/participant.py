from sqlalchemy import Column, DateTime, ForeignKey, Index, Uuid, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from chat_store.db.session import Base
from chat_store.utils.timeutils import utcnow
from enum import Enum
import uuid


class MemberRole(str, Enum):
    owner = 'owner'
    admin = 'admin'
    moderator = 'moderator'
    member = 'member'


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    role = Column(SAEnum(MemberRole, name="member_role"), nullable=False, default=MemberRole.member)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    left_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="participants")

    # One active row per (conversation, participant); rows with left_at set are history
    __table_args__ = (
        Index(
            "ux_participants_active",
            "conversation_id",
            "participant_id",
            unique=True,
            postgresql_where=text("left_at IS NULL"),
            sqlite_where=text("left_at IS NULL"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.left_at is None

    def __repr__(self):
        return f"<Participant conversation_id={self.conversation_id} participant_id={self.participant_id} role={self.role}>"
