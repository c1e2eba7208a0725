"""Conversation cache model for the offline message window."""

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chatsync.db.base import Base
from chatsync.models.base import TimestampMixin


class ConversationCache(Base, TimestampMixin):
    """Persisted recent-message window of one conversation."""

    __tablename__ = "conversation_cache"

    conversation_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    messages: Mapped[list] = mapped_column(JSON, default=list)  # newest first
    unread_count: Mapped[int] = mapped_column(Integer, default=0)
    last_message: Mapped[dict | None] = mapped_column(JSON)
