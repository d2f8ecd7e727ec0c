
from chat_store.models.conversation import Conversation, ConversationType, direct_key_for
from chat_store.models.message import Message, MessageType
from chat_store.models.participant import Participant, MemberRole
from chat_store.models.message_read import MessageRead

__all__ = [
    "Conversation",
    "ConversationType",
    "direct_key_for",
    "Message",
    "MessageType",
    "Participant",
    "MemberRole",
    "MessageRead"
]
