"""Initial and backward-in-time message loading."""

import asyncio
import logging
from collections.abc import Callable

from chatsync.config import settings
from chatsync.core.exceptions import TransportError
from chatsync.core.session import SessionContext
from chatsync.core.tasks import TaskTracker
from chatsync.schemas.message import Message, decode_messages
from chatsync.services.cache_store import CacheWriter
from chatsync.services.conversation_store import ConversationStore
from chatsync.services.transport import ChatTransport

logger = logging.getLogger(__name__)

Completion = Callable[[list[Message]], None]


class PaginationController:
    """Loads conversation history from the gateway into the store.

    Both loads hand back the cached timeline immediately and deliver the
    authoritative timeline to ``completion`` once the fetch finishes. The
    completion runs on the event loop that owns the store.
    """

    def __init__(
        self,
        session: SessionContext,
        store: ConversationStore,
        transport: ChatTransport,
        cache_writer: CacheWriter,
        tasks: TaskTracker,
        page_size: int | None = None,
        skip_when_corresponds: bool | None = None,
    ):
        self.session = session
        self.store = store
        self.transport = transport
        self.cache_writer = cache_writer
        self.tasks = tasks
        self.page_size = settings.PAGE_SIZE if page_size is None else page_size
        self.skip_when_corresponds = (
            settings.SKIP_FETCH_WHEN_CORRESPONDS
            if skip_when_corresponds is None
            else skip_when_corresponds
        )
        self._generations: dict[str, int] = {}

    def load_initial(
        self, conversation_id: str, completion: Completion | None = None
    ) -> list[Message]:
        """Load the newest page of a conversation.

        A conversation whose cache corresponds with the server is served
        from the cache without a fetch.

        Returns:
            The cached timeline
        """
        cached = self.store.get_timeline(conversation_id)

        if self.skip_when_corresponds and self.store.corresponds(conversation_id):
            logger.debug(f"Timeline of {conversation_id} corresponds, skipping fetch")
            if completion is not None:
                asyncio.get_running_loop().call_soon(completion, list(cached))
            return cached

        generation = self._generations.get(conversation_id, 0) + 1
        self._generations[conversation_id] = generation
        self.tasks.spawn(
            self._fetch_initial(conversation_id, generation, completion),
            name=f"load-initial:{conversation_id}",
        )
        return cached

    def load_older(
        self, conversation_id: str, completion: Completion | None = None
    ) -> list[Message]:
        """Load the page preceding the oldest loaded message.

        Returns:
            The cached timeline
        """
        cached = self.store.get_timeline(conversation_id)
        cursor = cached[-1].timestamp if cached else None
        self.tasks.spawn(
            self._fetch_older(conversation_id, cursor, completion),
            name=f"load-older:{conversation_id}",
        )
        return cached

    async def _fetch_page(
        self, conversation_id: str, before_timestamp: int | None = None
    ) -> list[Message] | None:
        key = self.session.routing_key(conversation_id)
        try:
            raw = await self.transport.fetch_messages(
                key, conversation_id, self.page_size, before_timestamp
            )
        except TransportError as e:
            logger.error(f"Failed to fetch messages for {conversation_id}: {e}")
            return None

        messages = decode_messages(raw, self.session.user_id)
        return [m for m in messages if m.belongs_to(conversation_id)]

    async def _fetch_initial(
        self, conversation_id: str, generation: int, completion: Completion | None
    ) -> None:
        messages = await self._fetch_page(conversation_id)

        if self._generations.get(conversation_id) != generation:
            logger.warning(f"Discarding superseded initial load for {conversation_id}")
            return

        if messages is None:
            self._complete(completion, self.store.get_timeline(conversation_id))
            return

        timeline = self.store.set_timeline(conversation_id, messages)
        self.cache_writer.persist(
            conversation_id,
            timeline,
            self.store.get_unread(conversation_id),
            self.store.get_last_message(conversation_id),
            mark_read=True,
        )
        self._complete(completion, timeline)

    async def _fetch_older(
        self, conversation_id: str, cursor: int | None, completion: Completion | None
    ) -> None:
        messages = await self._fetch_page(conversation_id, cursor)

        current = self.store.get_timeline(conversation_id)
        current_cursor = current[-1].timestamp if current else None
        if current_cursor != cursor:
            logger.warning(
                f"Discarding stale history page for {conversation_id} "
                f"(cursor {cursor}, now {current_cursor})"
            )
            self._complete(completion, current)
            return

        if not messages or not current:
            self._complete(completion, [])
            return

        merged = self.store.append_older(conversation_id, messages)
        self.cache_writer.persist(
            conversation_id,
            merged,
            self.store.get_unread(conversation_id),
            self.store.get_last_message(conversation_id),
        )
        self._complete(completion, merged)

    def _complete(self, completion: Completion | None, messages: list[Message]) -> None:
        if completion is not None:
            completion(list(messages))
