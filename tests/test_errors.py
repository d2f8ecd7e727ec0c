import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from chat_store.core.errors import (
    Conflict,
    Forbidden,
    NotFound,
    NotMember,
    StorageError,
    StorageUnavailable,
)
from chat_store.repositories.base import storage_errors


class _RecordingSession:
    def __init__(self):
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "raised, expected",
    [
        (IntegrityError("INSERT", {}, Exception("duplicate key")), Conflict),
        (IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed")), NotFound),
        (IntegrityError("INSERT", {}, _PgError("violates foreign key", "23503")), NotFound),
        (IntegrityError("INSERT", {}, _PgError("duplicate key value", "23505")), Conflict),
        (OperationalError("SELECT", {}, Exception("server closed the connection")), StorageUnavailable),
        (OperationalError("SELECT", {}, Exception("database is locked")), StorageUnavailable),
        (OperationalError("SELECT", {}, _PgError("canceling statement due to statement timeout", "57014")), StorageUnavailable),
        (OperationalError("SELECT", {}, _PgError("deadlock detected", "40P01")), StorageUnavailable),
        (OperationalError("INSERT", {}, Exception("too many SQL variables")), StorageError),
        (OperationalError("SELECT", {}, Exception("no such table: messages")), StorageError),
        (PoolTimeoutError("QueuePool limit reached"), StorageUnavailable),
        (DBAPIError("SELECT", {}, Exception("reset"), connection_invalidated=True), StorageUnavailable),
        (DBAPIError("SELECT", {}, Exception("bad input")), StorageError),
        (SQLAlchemyError("mapper trouble"), StorageError),
    ],
)
def test_storage_errors_translation(raised, expected):
    session = _RecordingSession()
    with pytest.raises(expected) as exc_info:
        with storage_errors(session, "create_message", "abc"):
            raise raised

    error = exc_info.value
    assert type(error) is expected
    assert error.operation == "create_message"
    assert error.target == "abc"
    assert error.__cause__ is raised
    assert session.rollbacks == 1


def test_domain_errors_pass_through_after_rollback():
    session = _RecordingSession()
    with pytest.raises(NotFound):
        with storage_errors(session, "delete_message", 1):
            raise NotFound("Message not found", operation="delete_message", target=1)
    assert session.rollbacks == 1


def test_success_does_not_roll_back():
    session = _RecordingSession()
    with storage_errors(session, "get_message_by_id"):
        pass
    assert session.rollbacks == 0


def test_unavailable_is_a_storage_error():
    assert issubclass(StorageUnavailable, StorageError)
    assert Forbidden is NotMember


def test_error_string_carries_context():
    error = NotFound("Conversation not found", operation="get_conversation_by_id", target="42")
    assert str(error) == "Conversation not found | operation=get_conversation_by_id | target=42"
