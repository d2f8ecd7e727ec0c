"""
Repository layer exports.
Provides database access for conversations, messages and membership.
"""
from chat_store.repositories.base import BaseRepository, storage_errors
from chat_store.repositories.conversation_repository import ConversationRepository
from chat_store.repositories.message_repository import MessageRepository
from chat_store.repositories.membership_repository import MembershipRepository
from chat_store.repositories.repository import Repository, get_repository

__all__ = [
    "BaseRepository",
    "storage_errors",
    "ConversationRepository",
    "MessageRepository",
    "MembershipRepository",
    "Repository",
    "get_repository",
]
