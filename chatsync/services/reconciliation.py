"""Consistency check between the cached timeline and the server's newest message."""

from collections.abc import Sequence

from chatsync.config import settings
from chatsync.schemas.message import Message


class ReconciliationEngine:
    """Decides whether a conversation's timeline is contiguous with the server.

    A conversation "corresponds" only when its timeline holds more than
    ``min_messages`` messages and the newest one carries the same timestamp
    as the conversation's last-message summary. The size guard covers a new
    conversation whose single message seeded both the summary and the
    timeline: equal timestamps there do not mean the history is loaded.
    """

    def __init__(self, min_messages: int | None = None):
        self.min_messages = (
            settings.CORRESPONDS_MIN_MESSAGES if min_messages is None else min_messages
        )

    def corresponds(
        self, timeline: Sequence[Message], last_message: Message | None
    ) -> bool:
        """Compute the consistency flag for one conversation.

        Args:
            timeline: Messages of the conversation, newest first
            last_message: Last-message summary of the conversation

        Returns:
            True when the cached window can be trusted without a refetch
        """
        if len(timeline) <= self.min_messages or last_message is None:
            return False
        return last_message.timestamp == timeline[0].timestamp
