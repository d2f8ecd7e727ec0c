import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import uuid

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chat_store.db.session import Base, build_engine
from chat_store.models import MemberRole
from chat_store.repositories import Repository
from chat_store.schemas.conversation import ConversationCreate
from chat_store.schemas.message import MessageCreate
from chat_store.schemas.participant import ParticipantCreate


@pytest.fixture
def engine():
    engine = build_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repo(db):
    return Repository(db)


@pytest.fixture
def users():
    """Three distinct user ids: U1, U2, U3."""
    return uuid.uuid4(), uuid.uuid4(), uuid.uuid4()


@pytest.fixture
def make_group(repo):
    def _make_group(owner, *members, name="Group"):
        conversation = repo.conversations.create_conversation(
            ConversationCreate(creator_id=owner, name=name, max_members=100)
        )
        repo.members.add_member(
            ParticipantCreate(conversation_id=conversation.id, participant_id=owner, role=MemberRole.owner)
        )
        for member in members:
            repo.members.add_member(ParticipantCreate(conversation_id=conversation.id, participant_id=member))
        return conversation
    return _make_group


@pytest.fixture
def send(repo):
    def _send(conversation_id, sender_id, content="hello"):
        return repo.messages.create_message(
            MessageCreate(conversation_id=conversation_id, sender_id=sender_id, content=content)
        )
    return _send
