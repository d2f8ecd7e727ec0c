from sqlalchemy.orm import Session

from chat_store.db.session import SessionLocal
from chat_store.repositories.conversation_repository import ConversationRepository
from chat_store.repositories.membership_repository import MembershipRepository
from chat_store.repositories.message_repository import MessageRepository


class Repository:
    """The three chat stores bound to one request-scoped session."""

    def __init__(self, db: Session):
        self.db = db
        self.conversations = ConversationRepository(db)
        self.messages = MessageRepository(db)
        self.members = MembershipRepository(db)


def get_repository():
    db = SessionLocal()
    try:
        yield Repository(db)

    finally:
        db.close()
