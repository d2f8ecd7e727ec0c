import logging
from typing import List
from uuid import UUID

from sqlalchemy import func

from chat_store.core.errors import Conflict, NotFound
from chat_store.models.conversation import Conversation
from chat_store.models.participant import MemberRole, Participant
from chat_store.repositories.base import BaseRepository
from chat_store.schemas.participant import ParticipantCreate
from chat_store.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class MembershipRepository(BaseRepository):
    """Room membership with stored roles; leaving stamps ``left_at`` instead of deleting the row."""

    def _active(self, conversation_id: UUID, participant_id: UUID):
        return self.db.query(Participant).filter(
            Participant.conversation_id == conversation_id,
            Participant.participant_id == participant_id,
            Participant.left_at.is_(None),
        )

    def _active_count(self, conversation_id: UUID) -> int:
        return (
            self.db.query(func.count(Participant.id))
            .filter(Participant.conversation_id == conversation_id, Participant.left_at.is_(None))
            .scalar()
        )

    def add_member(self, data: ParticipantCreate) -> Participant:
        """
        Add an active membership, enforcing the conversation's join rules.

        A conversation with ``max_members > 0`` refuses joins once full, and
        a direct conversation only ever admits the two users of its pair.
        Both raise ``Conflict``, as does an already-active membership.
        """
        member = Participant(
            conversation_id=data.conversation_id,
            participant_id=data.participant_id,
            role=data.role,
            joined_at=data.joined_at or utcnow(),
        )
        with self._errors("add_member", data.conversation_id):
            conversation = (
                self.db.query(Conversation)
                .filter(Conversation.id == data.conversation_id)
                .with_for_update()
                .first()
            )
            if not conversation:
                raise NotFound("Conversation not found", operation="add_member", target=data.conversation_id)
            if conversation.direct_key and str(data.participant_id) not in conversation.direct_key.split(":"):
                raise Conflict(
                    "Direct conversations only admit their two participants",
                    operation="add_member",
                    target=data.conversation_id,
                )
            if conversation.max_members > 0 and self._active_count(conversation.id) >= conversation.max_members:
                raise Conflict("Conversation is full", operation="add_member", target=data.conversation_id)
            self.db.add(member)
            self.db.commit()
            self.db.refresh(member)
        logger.info("User %s joined conversation %s as %s", member.participant_id, member.conversation_id, member.role.value)
        return member

    def remove_member(self, conversation_id: UUID, participant_id: UUID) -> None:
        with self._errors("remove_member", conversation_id):
            removed = self._active(conversation_id, participant_id).update(
                {Participant.left_at: utcnow()}, synchronize_session=False
            )
            if not removed:
                raise NotFound("Membership not found", operation="remove_member", target=conversation_id)
            self.db.commit()
        logger.info("User %s left conversation %s", participant_id, conversation_id)

    def get_room_members(self, conversation_id: UUID) -> List[Participant]:
        with self._errors("get_room_members", conversation_id):
            return (
                self.db.query(Participant)
                .filter(Participant.conversation_id == conversation_id, Participant.left_at.is_(None))
                .order_by(Participant.joined_at.asc(), Participant.id.asc())
                .all()
            )

    def is_user_member(self, conversation_id: UUID, participant_id: UUID) -> bool:
        # False, not NotFound: callers short-circuit on the boolean
        with self._errors("is_user_member", conversation_id):
            return bool(self.db.query(self._active(conversation_id, participant_id).exists()).scalar())

    def update_member_role(self, conversation_id: UUID, participant_id: UUID, role: MemberRole) -> None:
        with self._errors("update_member_role", conversation_id):
            updated = self._active(conversation_id, participant_id).update(
                {Participant.role: MemberRole(role)}, synchronize_session=False
            )
            if not updated:
                raise NotFound("Membership not found", operation="update_member_role", target=conversation_id)
            self.db.commit()
        logger.info("User %s is now %s in conversation %s", participant_id, MemberRole(role).value, conversation_id)
