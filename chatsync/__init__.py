"""Client-side chat message synchronization core."""

from chatsync.core.session import SessionContext
from chatsync.services.chat_service import ChatService

__all__ = ["ChatService", "SessionContext"]
