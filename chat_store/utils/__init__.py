"""Utility modules for the chat store."""
from chat_store.utils.logger import setup_logging, safe_repr, preview
from chat_store.utils.pagination import page_window
from chat_store.utils.timeutils import utcnow

__all__ = [
    'setup_logging',
    'safe_repr',
    'preview',
    'page_window',
    'utcnow'
]
