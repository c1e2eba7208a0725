"""Request/response surface of the chat transport."""

from typing import Any, Protocol


class ChatTransport(Protocol):
    """Calls the synchronization core issues against the chat gateway.

    Real-time events arrive separately through the event listener worker.
    """

    def is_reachable(self) -> bool:
        """Whether the network path to the gateway currently works."""
        ...

    async def fetch_unread_status(self, scope_id: str) -> dict[str, Any]:
        """Get raw unread counters for the operator's scope."""
        ...

    async def fetch_last_messages(self, scope_id: str) -> dict[str, Any]:
        """Get the last raw message per conversation, rooms and members merged."""
        ...

    async def fetch_messages(
        self,
        key: str,
        conversation_id: str,
        limit: int,
        before_timestamp: int | None = None,
    ) -> list[Any]:
        """Get raw messages of a conversation, newest first."""
        ...

    async def send_message(self, key: str, conversation_id: str, text: str) -> dict[str, Any]:
        """Send a text message."""
        ...

    async def mark_read(self, message_ids: list[str]) -> dict[str, Any]:
        """Mark messages as read."""
        ...
