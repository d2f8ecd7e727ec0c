"""Errors raised by the chat stores.

Callers map these onto their own transport: ``NotFound`` to 404,
``NotMember`` to 403, ``Conflict`` to 409, ``StorageUnavailable`` to 503.
"""
from typing import Any, Optional


class ChatStoreError(Exception):
    """Base class; carries the failing operation and the id it targeted."""

    def __init__(self, message: str, *, operation: Optional[str] = None, target: Any = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.target = target

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.target is not None:
            parts.append(f"target={self.target}")
        return " | ".join(parts)


class NotFound(ChatStoreError):
    """Entity absent, zero rows affected, or a reference to a row that does not exist."""


class NotMember(ChatStoreError):
    pass


Forbidden = NotMember


class Conflict(ChatStoreError):
    """Uniqueness violation, or a join the conversation's membership rules refuse."""


class StorageError(ChatStoreError):
    pass


class StorageUnavailable(StorageError):
    """Connection lost, pool exhausted, lock or deadlock, statement timed out or was cancelled."""


class Unsupported(ChatStoreError):
    pass
