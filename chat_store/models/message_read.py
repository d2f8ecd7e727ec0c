from sqlalchemy import Column, DateTime, ForeignKey, Uuid, UniqueConstraint
from chat_store.db.session import Base
from chat_store.utils.timeutils import utcnow
import uuid

class MessageRead(Base):
    __tablename__ = "message_reads"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id = Column(Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(Uuid(as_uuid=True), nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('message_id', 'participant_id', name='uq_message_reads_message_participant'),
    )

    def __repr__(self):
        return f"<MessageRead message_id={self.message_id} participant_id={self.participant_id}>"
