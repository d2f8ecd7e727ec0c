"""Chat persistence layer: conversations, messages, membership and read receipts."""

__version__ = "1.0.0"
