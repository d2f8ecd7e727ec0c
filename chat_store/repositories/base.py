"""
Shared plumbing for the chat repositories.

Every repository works on one request-scoped ``Session``. Mutations are a
single unit of work: they commit on success, and any failure rolls the
session back before the error leaves the repository.
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session

from chat_store.core.errors import (
    ChatStoreError,
    Conflict,
    NotFound,
    StorageError,
    StorageUnavailable,
)

logger = logging.getLogger(__name__)

# SQLSTATE classes 08 (connection), 40 (serialization failure, deadlock),
# 53 (insufficient resources) and 57 (statement_timeout 57014, shutdown 57P01)
_UNAVAILABLE_SQLSTATE_CLASSES = ("08", "40", "53", "57")

_UNAVAILABLE_MESSAGES = (
    "could not connect",
    "connection to server",
    "connection refused",
    "server closed the connection",
    "terminating connection",
    "canceling statement",
    "timeout expired",
    "database is locked",
    "unable to open database",
)


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "23503":
        return True
    if getattr(orig, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_FOREIGNKEY":
        return True
    return "foreign key constraint" in str(orig).lower()


def _is_unavailable(exc: DBAPIError) -> bool:
    """Connection, timeout and lock failures; not errors the same statement would hit again."""
    if exc.connection_invalidated:
        return True
    code = getattr(exc.orig, "pgcode", None)
    if code:
        return code.startswith(_UNAVAILABLE_SQLSTATE_CLASSES)
    message = str(exc.orig).lower()
    return any(marker in message for marker in _UNAVAILABLE_MESSAGES)


@contextmanager
def storage_errors(db: Session, operation: str, target: Any = None) -> Iterator[None]:
    """
    Translate SQLAlchemy failures raised inside the block into chat store errors.

    The session is rolled back for every failure, including domain errors
    raised by the block itself, so a half-finished unit of work never leaks
    into the next call on the same session. A foreign key pointing at a
    missing row is ``NotFound``, any other integrity violation ``Conflict``.
    """
    try:
        yield
    except ChatStoreError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if _is_foreign_key_violation(exc):
            logger.warning("%s references a missing row (target=%s): %s", operation, target, exc.orig)
            raise NotFound(f"{operation} references a missing row", operation=operation, target=target) from exc
        logger.warning("%s conflicts with existing data (target=%s): %s", operation, target, exc.orig)
        raise Conflict(f"{operation} conflicts with existing data", operation=operation, target=target) from exc
    except PoolTimeoutError as exc:
        db.rollback()
        logger.error("%s failed, connection pool exhausted (target=%s): %s", operation, target, exc)
        raise StorageUnavailable(f"{operation} failed: storage unavailable", operation=operation, target=target) from exc
    except DBAPIError as exc:
        db.rollback()
        if _is_unavailable(exc):
            logger.error("%s failed, storage unavailable (target=%s): %s", operation, target, exc)
            raise StorageUnavailable(f"{operation} failed: storage unavailable", operation=operation, target=target) from exc
        logger.exception("%s failed (target=%s)", operation, target)
        raise StorageError(f"{operation} failed", operation=operation, target=target) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s failed (target=%s)", operation, target)
        raise StorageError(f"{operation} failed", operation=operation, target=target) from exc


class BaseRepository:
    """Holds the session shared by the repositories of one request."""

    def __init__(self, db: Session):
        self.db = db

    def _errors(self, operation: str, target: Optional[Any] = None):
        return storage_errors(self.db, operation, target)

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name
