import logging
import uuid
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from chat_store.core.errors import NotFound, NotMember, Unsupported
from chat_store.models.conversation import Conversation
from chat_store.models.message import Message, MessageType
from chat_store.models.message_read import MessageRead
from chat_store.repositories.base import BaseRepository
from chat_store.repositories.membership_repository import MembershipRepository
from chat_store.schemas.message import MessageCreate
from chat_store.utils.logger import preview
from chat_store.utils.pagination import page_window
from chat_store.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

# Keeps each multi-row INSERT under SQLite's bound-parameter limit
READ_MARK_BATCH_SIZE = 200


class MessageRepository(BaseRepository):

    def list_messages(
        self,
        conversation_id: UUID,
        viewer_id: UUID,
        page: int,
        size: int,
        before: Optional[datetime] = None,
    ) -> Tuple[List[Message], int]:
        """
        Newest-first page of a conversation's messages.

        The viewer must hold an active membership; the check runs before any
        message row is read. ``total`` counts every message of the
        conversation (older than ``before`` when given), not just the page.
        """
        offset, limit = page_window(page, size)

        if not MembershipRepository(self.db).is_user_member(conversation_id, viewer_id):
            logger.warning("User %s tried to read conversation %s without membership", viewer_id, conversation_id)
            raise NotMember("User is not a member of this conversation", operation="list_messages", target=conversation_id)

        with self._errors("list_messages", conversation_id):
            query = self.db.query(Message).filter(Message.conversation_id == conversation_id)
            if before is not None:
                query = query.filter(Message.created_at < before)

            total = query.count()
            messages = (
                query.order_by(Message.created_at.desc(), Message.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
        return messages, total

    def create_message(self, data: MessageCreate) -> Message:
        """
        Persist a message and move its conversation to the top of the activity order.

        The sender must be an active member (``NotMember`` otherwise). The
        insert and the conversation ``updated_at`` bump share one
        transaction, so ordering by activity never disagrees with the
        messages that exist.
        """
        now = utcnow()
        message = Message(
            id=data.id or uuid.uuid4(),
            conversation_id=data.conversation_id,
            sender_id=data.sender_id,
            content=data.content,
            type=data.type,
            parent_id=data.parent_id,
            created_at=now,
            updated_at=now,
        )

        with self._errors("create_message", data.conversation_id):
            touched = (
                self.db.query(Conversation)
                .filter(Conversation.id == data.conversation_id)
                .update({Conversation.updated_at: now}, synchronize_session=False)
            )
            if not touched:
                raise NotFound("Conversation not found", operation="create_message", target=data.conversation_id)
            if not MembershipRepository(self.db).is_user_member(data.conversation_id, data.sender_id):
                logger.warning("User %s tried to post in conversation %s without membership", data.sender_id, data.conversation_id)
                raise NotMember(
                    "User is not a member of this conversation", operation="create_message", target=data.conversation_id
                )
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)

        logger.info(
            "Message %s (%s) sent by %s in conversation %s: %s",
            message.id, message.type.value, message.sender_id, message.conversation_id, preview(message.content),
        )
        return message

    def get_message_by_id(self, message_id: UUID) -> Message:
        with self._errors("get_message_by_id", message_id):
            message = self.db.query(Message).filter(Message.id == message_id).first()
        if not message:
            raise NotFound("Message not found", operation="get_message_by_id", target=message_id)
        return message

    def update_message(self, message: Message) -> None:
        """Persist edited content/type and stamp ``edited_at``."""
        now = utcnow()
        message.edited_at = now
        message.updated_at = now

        with self._errors("update_message", message.id):
            updated = (
                self.db.query(Message)
                .filter(Message.id == message.id)
                .update(
                    {
                        Message.content: message.content,
                        Message.type: MessageType(message.type),
                        Message.edited_at: now,
                        Message.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                raise NotFound("Message not found", operation="update_message", target=message.id)
            self.db.commit()

    def delete_message(self, message_id: UUID) -> None:
        with self._errors("delete_message", message_id):
            deleted = self.db.query(Message).filter(Message.id == message_id).delete(synchronize_session=False)
            if not deleted:
                raise NotFound("Message not found", operation="delete_message", target=message_id)
            self.db.commit()
        logger.info("Message %s deleted", message_id)

    def mark_messages_as_read(self, reader_id: UUID, message_ids: Iterable[UUID]) -> None:
        """
        Record that ``reader_id`` has read every message in ``message_ids``.

        Upserts in batches of ``READ_MARK_BATCH_SIZE`` rows, all inside one
        transaction: all ids are marked or none are. Re-marking a message
        refreshes ``read_at``. An id with no message raises ``NotFound``.
        """
        unique_ids = list(dict.fromkeys(message_ids))
        if not unique_ids:
            return

        insert = _UPSERT_INSERTS.get(self.dialect_name)
        if insert is None:
            raise Unsupported(
                f"Read-mark upsert is not available for dialect {self.dialect_name}",
                operation="mark_messages_as_read",
            )

        now = utcnow()
        with self._errors("mark_messages_as_read", reader_id):
            for start in range(0, len(unique_ids), READ_MARK_BATCH_SIZE):
                batch = unique_ids[start:start + READ_MARK_BATCH_SIZE]
                stmt = insert(MessageRead).values(
                    [
                        {"id": uuid.uuid4(), "message_id": message_id, "participant_id": reader_id, "read_at": now}
                        for message_id in batch
                    ]
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[MessageRead.message_id, MessageRead.participant_id],
                    set_={"read_at": stmt.excluded.read_at},
                )
                self.db.execute(stmt)
            self.db.commit()
        logger.debug("User %s marked %d messages as read", reader_id, len(unique_ids))

    def get_unread_count(self, reader_id: UUID, conversation_id: UUID) -> int:
        """Messages in the conversation from other senders that the reader has no read mark for."""
        with self._errors("get_unread_count", conversation_id):
            count = (
                self.db.query(func.count(Message.id))
                .select_from(Message)
                .outerjoin(
                    MessageRead,
                    and_(MessageRead.message_id == Message.id, MessageRead.participant_id == reader_id),
                )
                .filter(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != reader_id,
                    MessageRead.id.is_(None),
                )
                .scalar()
            )
        return count or 0
