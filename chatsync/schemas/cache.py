"""Offline cache record schema."""

from pydantic import BaseModel, Field

from chatsync.schemas.message import Message


class CachedRecord(BaseModel):
    """Persisted snapshot of one conversation."""

    conversation_id: str
    messages: list[Message] = Field(default_factory=list, description="Newest first")
    unread_count: int = Field(default=0, ge=0)
    last_message: Message | None = None
