import logging
import uuid
from typing import List, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, exists, func, select

from chat_store.core.errors import Conflict, NotFound
from chat_store.models.conversation import Conversation, ConversationType, direct_key_for
from chat_store.models.message import Message
from chat_store.models.message_read import MessageRead
from chat_store.models.participant import MemberRole, Participant
from chat_store.repositories.base import BaseRepository
from chat_store.schemas.conversation import ConversationCreate, ConversationResponse, ConversationWithUnread
from chat_store.schemas.message import LastMessage
from chat_store.utils.pagination import page_window
from chat_store.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

MAX_GROUP_PARTICIPANTS = 1000


class ConversationRepository(BaseRepository):

    def _member_conversations(self, viewer_id: UUID):
        """Conversations the viewer actively participates in."""
        return (
            self.db.query(Conversation)
            .join(
                Participant,
                and_(
                    Participant.conversation_id == Conversation.id,
                    Participant.participant_id == viewer_id,
                    Participant.left_at.is_(None),
                ),
            )
        )

    def _viewer_conversation_ids(self, viewer_id: UUID):
        return select(Participant.conversation_id).where(
            Participant.participant_id == viewer_id, Participant.left_at.is_(None)
        )

    @staticmethod
    def _newest_first(query):
        return query.order_by(Conversation.updated_at.desc(), Conversation.id.desc())

    def list_conversations(self, viewer_id: UUID, page: int, size: int) -> Tuple[List[Conversation], int]:
        offset, limit = page_window(page, size)
        with self._errors("list_conversations", viewer_id):
            query = self._member_conversations(viewer_id)
            total = query.count()
            conversations = self._newest_first(query).offset(offset).limit(limit).all()
        return conversations, total

    def create_conversation(self, data: ConversationCreate) -> Conversation:
        now = utcnow()
        conversation = Conversation(
            id=data.id or uuid.uuid4(),
            type=data.type,
            creator_id=data.creator_id,
            name=data.name,
            description=data.description,
            is_private=data.is_private,
            max_members=data.max_members,
            created_at=now,
            updated_at=now,
        )
        with self._errors("create_conversation", conversation.id):
            self.db.add(conversation)
            self.db.commit()
            self.db.refresh(conversation)
        logger.info("Conversation %s (%s) created by %s", conversation.id, conversation.type.value, conversation.creator_id)
        return conversation

    def create_group_conversation(self, data: ConversationCreate, participant_ids: Sequence[UUID]) -> Conversation:
        """
        Create a group with its creator as owner and ``participant_ids`` as members, in one transaction.

        The group needs a name and between one and ``MAX_GROUP_PARTICIPANTS``
        other participants, listed once each and not including the creator.
        The creator counts towards ``max_members``. Invalid requests raise
        ``ValueError`` before anything is written.
        """
        if not data.name:
            raise ValueError("A group conversation needs a name")
        if not participant_ids:
            raise ValueError("A group conversation needs at least one participant besides its creator")
        if len(participant_ids) > MAX_GROUP_PARTICIPANTS:
            raise ValueError(f"Too many participants (max {MAX_GROUP_PARTICIPANTS})")
        if data.creator_id in participant_ids:
            raise ValueError("The creator is added automatically and cannot be listed as a participant")
        if len(set(participant_ids)) != len(participant_ids):
            raise ValueError("Duplicate participants are not allowed")
        if data.max_members and len(participant_ids) + 1 > data.max_members:
            raise ValueError(f"{len(participant_ids) + 1} members exceed max_members={data.max_members}")

        now = utcnow()
        conversation = Conversation(
            id=data.id or uuid.uuid4(),
            type=ConversationType.group,
            creator_id=data.creator_id,
            name=data.name,
            description=data.description,
            is_private=data.is_private,
            max_members=data.max_members,
            created_at=now,
            updated_at=now,
        )
        members = [
            Participant(conversation_id=conversation.id, participant_id=data.creator_id, role=MemberRole.owner, joined_at=now)
        ]
        members.extend(
            Participant(conversation_id=conversation.id, participant_id=participant_id, role=MemberRole.member, joined_at=now)
            for participant_id in participant_ids
        )

        with self._errors("create_group_conversation", conversation.id):
            self.db.add(conversation)
            self.db.flush()
            self.db.add_all(members)
            self.db.commit()
            self.db.refresh(conversation)

        logger.info("Group conversation %s created by %s with %d members", conversation.id, data.creator_id, len(members))
        return conversation

    def get_conversation_by_id(self, conversation_id: UUID) -> Conversation:
        with self._errors("get_conversation_by_id", conversation_id):
            conversation = self.db.query(Conversation).filter(Conversation.id == conversation_id).first()
        if not conversation:
            raise NotFound("Conversation not found", operation="get_conversation_by_id", target=conversation_id)
        return conversation

    def update_conversation(self, conversation: Conversation) -> None:
        """Persist the mutable metadata (name, description, privacy, size cap)."""
        conversation.updated_at = utcnow()
        with self._errors("update_conversation", conversation.id):
            updated = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation.id)
                .update(
                    {
                        Conversation.name: conversation.name,
                        Conversation.description: conversation.description,
                        Conversation.is_private: conversation.is_private,
                        Conversation.max_members: conversation.max_members,
                        Conversation.updated_at: conversation.updated_at,
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                raise NotFound("Conversation not found", operation="update_conversation", target=conversation.id)
            self.db.commit()

    def delete_conversation(self, conversation_id: UUID) -> None:
        # Messages, participants and read marks go with it (ON DELETE CASCADE)
        with self._errors("delete_conversation", conversation_id):
            deleted = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .delete(synchronize_session=False)
            )
            if not deleted:
                raise NotFound("Conversation not found", operation="delete_conversation", target=conversation_id)
            self.db.commit()
        logger.info("Conversation %s deleted", conversation_id)

    def get_conversations_by_user_id(self, viewer_id: UUID) -> List[Conversation]:
        with self._errors("get_conversations_by_user_id", viewer_id):
            return self._newest_first(self._member_conversations(viewer_id)).all()

    def create_direct_conversation(self, participant_a: UUID, participant_b: UUID) -> Conversation:
        """
        Create a direct conversation between two users in one transaction.

        ``participant_a`` becomes the owner, ``participant_b`` a member. The
        pair key is unique, so if the two already share a direct
        conversation this raises ``Conflict`` and nothing is written. Use
        ``get_or_create_direct_conversation`` for lookup-or-create.
        """
        if participant_a == participant_b:
            raise ValueError("Cannot create a direct conversation with yourself")

        now = utcnow()
        conversation = Conversation(
            id=uuid.uuid4(),
            type=ConversationType.direct,
            creator_id=participant_a,
            name=f"Direct: {str(participant_a)[:8]}-{str(participant_b)[:8]}",
            description="Direct conversation",
            is_private=True,
            max_members=2,
            direct_key=direct_key_for(participant_a, participant_b),
            created_at=now,
            updated_at=now,
        )
        members = [
            Participant(conversation_id=conversation.id, participant_id=participant_a, role=MemberRole.owner, joined_at=now),
            Participant(conversation_id=conversation.id, participant_id=participant_b, role=MemberRole.member, joined_at=now),
        ]

        with self._errors("create_direct_conversation", conversation.direct_key):
            self.db.add(conversation)
            # Parent row first so the participant foreign keys resolve
            self.db.flush()
            self.db.add_all(members)
            self.db.commit()
            self.db.refresh(conversation)

        logger.info("Direct conversation %s created between %s and %s", conversation.id, participant_a, participant_b)
        return conversation

    def get_direct_conversation(self, participant_a: UUID, participant_b: UUID) -> Conversation:
        """The direct conversation whose active participants are exactly ``{a, b}``, in either order."""
        if participant_a == participant_b:
            raise ValueError("A direct conversation needs two different participants")

        active = Participant.left_at.is_(None)
        has_a = exists().where(
            Participant.conversation_id == Conversation.id, Participant.participant_id == participant_a, active
        )
        has_b = exists().where(
            Participant.conversation_id == Conversation.id, Participant.participant_id == participant_b, active
        )
        active_count = (
            select(func.count(Participant.id))
            .where(Participant.conversation_id == Conversation.id, active)
            .correlate(Conversation)
            .scalar_subquery()
        )

        with self._errors("get_direct_conversation", direct_key_for(participant_a, participant_b)):
            conversation = (
                self.db.query(Conversation)
                .filter(
                    Conversation.type == ConversationType.direct,
                    has_a,
                    has_b,
                    active_count == 2,
                )
                .order_by(Conversation.created_at.asc())
                .first()
            )
        if not conversation:
            raise NotFound(
                "Direct conversation not found",
                operation="get_direct_conversation",
                target=direct_key_for(participant_a, participant_b),
            )
        return conversation

    def get_or_create_direct_conversation(self, participant_a: UUID, participant_b: UUID) -> Conversation:
        """
        Look up the pair's direct conversation, creating it if absent.

        The pair keeps one conversation for good: if either user left it,
        their membership is restored instead of starting a new one. When a
        concurrent caller creates it between our lookup and insert, the
        unique pair key rejects our insert and the winner's conversation is
        returned instead.
        """
        try:
            return self.get_direct_conversation(participant_a, participant_b)
        except NotFound:
            pass

        try:
            return self.create_direct_conversation(participant_a, participant_b)
        except Conflict:
            logger.info("Direct conversation for %s/%s already exists, reopening it", participant_a, participant_b)

        try:
            return self._reopen_direct_conversation(participant_a, participant_b)
        except Conflict:
            # Another caller restored the same membership first
            return self.get_direct_conversation(participant_a, participant_b)

    def _reopen_direct_conversation(self, participant_a: UUID, participant_b: UUID) -> Conversation:
        direct_key = direct_key_for(participant_a, participant_b)
        with self._errors("reopen_direct_conversation", direct_key):
            conversation = (
                self.db.query(Conversation)
                .filter(Conversation.direct_key == direct_key)
                .with_for_update()
                .first()
            )
            if not conversation:
                raise NotFound(
                    "Direct conversation not found", operation="reopen_direct_conversation", target=direct_key
                )
            active = {
                participant_id
                for (participant_id,) in self.db.query(Participant.participant_id).filter(
                    Participant.conversation_id == conversation.id, Participant.left_at.is_(None)
                )
            }
            now = utcnow()
            for participant_id in (participant_a, participant_b):
                if participant_id in active:
                    continue
                role = MemberRole.owner if participant_id == conversation.creator_id else MemberRole.member
                self.db.add(
                    Participant(conversation_id=conversation.id, participant_id=participant_id, role=role, joined_at=now)
                )
                logger.info("User %s rejoined direct conversation %s", participant_id, conversation.id)
            self.db.commit()
        return self.get_direct_conversation(participant_a, participant_b)

    def list_conversations_with_unread(
        self, viewer_id: UUID, page: int, size: int
    ) -> Tuple[List[ConversationWithUnread], int]:
        """
        Page of the viewer's conversations with unread count and last message.

        Unread counts come from an anti-join of messages against the
        viewer's read marks, the last message from a ``row_number()``
        window; both are joined onto the page in a single query.
        """
        offset, limit = page_window(page, size)
        viewer_conversations = self._viewer_conversation_ids(viewer_id)

        unread = (
            self.db.query(
                Message.conversation_id.label("conversation_id"),
                func.count(Message.id).label("unread_count"),
            )
            .select_from(Message)
            .outerjoin(
                MessageRead,
                and_(MessageRead.message_id == Message.id, MessageRead.participant_id == viewer_id),
            )
            .filter(
                Message.conversation_id.in_(viewer_conversations),
                Message.sender_id != viewer_id,
                MessageRead.id.is_(None),
            )
            .group_by(Message.conversation_id)
            .subquery("unread")
        )

        ranked = (
            self.db.query(
                Message.id.label("id"),
                Message.conversation_id.label("conversation_id"),
                Message.sender_id.label("sender_id"),
                Message.content.label("content"),
                Message.type.label("type"),
                Message.created_at.label("created_at"),
                func.row_number()
                .over(
                    partition_by=Message.conversation_id,
                    order_by=(Message.created_at.desc(), Message.id.desc()),
                )
                .label("row_rank"),
            )
            .filter(Message.conversation_id.in_(viewer_conversations))
            .subquery("ranked")
        )

        with self._errors("list_conversations_with_unread", viewer_id):
            base = self._member_conversations(viewer_id)
            total = base.count()
            rows = (
                self._newest_first(
                    base.outerjoin(unread, unread.c.conversation_id == Conversation.id)
                    .outerjoin(ranked, and_(ranked.c.conversation_id == Conversation.id, ranked.c.row_rank == 1))
                    .add_columns(
                        func.coalesce(unread.c.unread_count, 0).label("unread_count"),
                        ranked.c.id.label("last_id"),
                        ranked.c.sender_id.label("last_sender_id"),
                        ranked.c.content.label("last_content"),
                        ranked.c.type.label("last_type"),
                        ranked.c.created_at.label("last_created_at"),
                    )
                )
                .offset(offset)
                .limit(limit)
                .all()
            )

        results = []
        for row in rows:
            last_message = None
            if row.last_id is not None:
                last_message = LastMessage(
                    id=row.last_id,
                    sender_id=row.last_sender_id,
                    content=row.last_content,
                    type=row.last_type,
                    created_at=row.last_created_at,
                )
            results.append(
                ConversationWithUnread(
                    **ConversationResponse.model_validate(row.Conversation).model_dump(),
                    unread_count=row.unread_count,
                    last_message=last_message,
                )
            )
        return results, total
