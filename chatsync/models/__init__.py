"""SQLAlchemy models."""

from chatsync.models.conversation_cache import ConversationCache

__all__ = [
    "ConversationCache",
]
