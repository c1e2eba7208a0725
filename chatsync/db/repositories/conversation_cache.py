"""Conversation cache repository."""

from __future__ import annotations

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from chatsync.db.repositories.base import BaseRepository
from chatsync.models import ConversationCache


class ConversationCacheRepository(BaseRepository[ConversationCache]):
    """Repository for the persisted conversation windows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ConversationCache)

    async def replace(
        self,
        conversation_id: str,
        *,
        messages: list[dict],
        unread_count: int,
        last_message: dict | None,
    ) -> ConversationCache:
        """Replace the cached window of a conversation.

        The delete and the insert are committed together, so readers never
        observe a conversation without its row or with two rows.

        Args:
            conversation_id: The conversation ID
            messages: Serialized messages, newest first
            unread_count: Unread counter to persist
            last_message: Serialized last message, if known

        Returns:
            The new cache row
        """
        await self.session.execute(
            delete(ConversationCache).where(
                ConversationCache.conversation_id == conversation_id
            )
        )
        return await self.create(
            conversation_id=conversation_id,
            messages=messages,
            unread_count=unread_count,
            last_message=last_message,
        )

    async def delete_for_conversation(self, conversation_id: str) -> int:
        """Delete every cached row of a conversation.

        Returns:
            Number of deleted rows
        """
        result = await self.session.execute(
            delete(ConversationCache).where(
                ConversationCache.conversation_id == conversation_id
            )
        )
        await self.session.commit()
        return result.rowcount or 0
