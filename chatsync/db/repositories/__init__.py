"""Repository classes for database operations."""

from chatsync.db.repositories.base import BaseRepository
from chatsync.db.repositories.conversation_cache import ConversationCacheRepository

__all__ = [
    "BaseRepository",
    "ConversationCacheRepository",
]
