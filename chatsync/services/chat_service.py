"""Chat synchronization service exposed to the presentation layer."""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from chatsync.core.exceptions import CacheStoreError, MalformedPayloadError, TransportError
from chatsync.core.observable import Observable
from chatsync.core.session import SessionContext
from chatsync.core.tasks import TaskTracker
from chatsync.schemas.message import Message, decode_message
from chatsync.services.cache_store import CacheStore, CacheWriter
from chatsync.services.conversation_store import ConversationStore
from chatsync.services.event_dispatcher import (
    EventDispatcher,
    MessageSoundPlayer,
    StreamingState,
)
from chatsync.services.pagination import Completion, PaginationController
from chatsync.services.reconciliation import ReconciliationEngine
from chatsync.services.transport import ChatTransport
from chatsync.services.unread import UnreadAggregator

logger = logging.getLogger(__name__)


class ChatService:
    """Keeps conversation timelines, unread counters and last messages in sync.

    All methods must be called from the event loop that owns the service.
    Network work runs in background tasks whose results are applied on the
    same loop, so the store only ever has one writer.
    """

    def __init__(
        self,
        session: SessionContext,
        transport: ChatTransport,
        cache_store: CacheStore,
        sound_player: MessageSoundPlayer | None = None,
        streaming_state: Callable[[], StreamingState] | None = None,
        reconciler: ReconciliationEngine | None = None,
    ):
        self.session = session
        self.transport = transport
        self.cache_store = cache_store

        self.tasks = TaskTracker()
        self.store = ConversationStore(reconciler)
        self.unread_aggregator = UnreadAggregator(session)
        self.cache_writer = CacheWriter(cache_store, self.tasks)
        self.dispatcher = EventDispatcher(
            session,
            self.store,
            transport,
            self.tasks,
            refresh_unread=self.refresh_unread_status,
            sound_player=sound_player,
            streaming_state=streaming_state,
        )
        self.pagination = PaginationController(
            session, self.store, transport, self.cache_writer, self.tasks
        )

    # Observable views

    @property
    def unread_status(self) -> Observable[dict[str, int]]:
        return self.store.unread

    @property
    def last_messages(self) -> Observable[dict[str, Message]]:
        return self.store.last_messages

    @property
    def messages(self) -> Observable[dict[str, tuple[Message, ...]]]:
        return self.store.timelines

    @property
    def new_message(self) -> Observable[dict[str, Message]]:
        return self.store.new_message

    @property
    def drafts(self) -> Observable[dict[str, str]]:
        return self.store.drafts

    @property
    def room_added(self) -> Observable[bool]:
        return self.dispatcher.room_added

    # Transport events

    def handle_connection_changed(self, connected: bool) -> None:
        self.dispatcher.on_connection_changed(connected)

    def handle_incoming_message(self, raw: Any) -> Message | None:
        return self.dispatcher.on_message(raw)

    # Operations

    def is_reachable(self) -> bool:
        """Network reachability combined with the socket connection state."""
        return self.transport.is_reachable() and self.dispatcher.connected

    def request_unread_status(self) -> None:
        """Refresh unread counters in the background."""
        self.tasks.spawn(self.refresh_unread_status(), name="unread-refresh")

    async def refresh_unread_status(self) -> dict[str, int]:
        """Fetch unread counters and replace the published mapping."""
        try:
            payload = await self.transport.fetch_unread_status(self.session.company_id)
        except TransportError as e:
            logger.error(f"Failed to fetch unread status: {e}")
            return self.store.unread.value

        unread = self.unread_aggregator.apply(payload)
        self.store.set_unread_all(unread)
        return unread

    def request_last_messages(
        self, completion: Callable[[dict[str, Message]], None] | None = None
    ) -> None:
        """Refresh last messages in the background."""
        self.tasks.spawn(self._request_last_messages(completion), name="last-messages")

    async def _request_last_messages(
        self, completion: Callable[[dict[str, Message]], None] | None
    ) -> None:
        try:
            dialogs = await self.transport.fetch_last_messages(self.session.company_id)
        except TransportError as e:
            logger.error(f"Failed to fetch last messages: {e}")
            return

        last_messages = self.update_last_messages(dialogs)
        if completion is not None:
            completion(last_messages)

    def update_last_messages(self, dialogs: Mapping[str, Any]) -> dict[str, Message]:
        """Replace last messages from a flat conversation id -> raw message mapping.

        Entries that fail to decode, or whose room is not the conversation
        they are listed under, are left out.
        """
        last_messages: dict[str, Message] = {}
        for conversation_id, raw in dialogs.items():
            try:
                message = decode_message(raw, self.session.user_id)
            except MalformedPayloadError as e:
                logger.warning(f"Dropping last message of {conversation_id}: {e}")
                continue
            if message.belongs_to(conversation_id):
                last_messages[conversation_id] = message

        self.store.set_last_messages(last_messages)
        return last_messages

    def send_message(self, conversation_id: str, text: str) -> Message:
        return self.dispatcher.send_message(conversation_id, text)

    def request_messages(
        self, conversation_id: str, completion: Completion | None = None
    ) -> list[Message]:
        return self.pagination.load_initial(conversation_id, completion)

    def request_more_messages(
        self, conversation_id: str, completion: Completion | None = None
    ) -> list[Message]:
        return self.pagination.load_older(conversation_id, completion)

    def mark_read(self, message_ids: list[str], conversation_id: str) -> None:
        """Mark messages read on the server and zero the cached unread counter.

        The local zeroing only corrects the cache quickly; the refreshed
        server counters that follow are authoritative.
        """
        self.tasks.spawn(self._mark_read(message_ids), name=f"mark-read:{conversation_id}")
        self.cache_writer.zero_unread(conversation_id)

    async def _mark_read(self, message_ids: list[str]) -> None:
        try:
            await self.transport.mark_read(message_ids)
        except TransportError as e:
            logger.error(f"Failed to mark {len(message_ids)} messages read: {e}")
        await self.refresh_unread_status()

    def save_draft(self, conversation_id: str, text: str | None) -> None:
        self.store.save_draft(conversation_id, text)

    def get_draft(self, conversation_id: str) -> str | None:
        return self.store.get_draft(conversation_id)

    def fetch_cached_messages(self) -> None:
        """Warm the store from the offline cache in the background."""
        self.tasks.spawn(self.load_cached_messages(), name="cache-warmup")

    async def load_cached_messages(self) -> int:
        """Load every cached conversation into the store.

        Returns:
            Number of conversations restored
        """
        try:
            records = await self.cache_store.load_all()
        except CacheStoreError as e:
            logger.error(f"Failed to load cached conversations: {e}")
            return 0

        timelines: dict[str, list[Message]] = {}
        last_messages: dict[str, Message] = {}
        unread: dict[str, int] = {}
        for record in records:
            timelines[record.conversation_id] = [
                self._for_current_user(m) for m in record.messages
            ]
            unread[record.conversation_id] = record.unread_count
            if record.last_message is not None:
                last_messages[record.conversation_id] = self._for_current_user(
                    record.last_message
                )

        self.store.load_snapshot(timelines, last_messages, unread)
        logger.info(f"Loaded {len(records)} cached conversations")
        return len(records)

    def _for_current_user(self, message: Message) -> Message:
        is_outgoing = message.sender_id == self.session.user_id
        if message.is_outgoing == is_outgoing:
            return message
        return message.model_copy(update={"is_outgoing": is_outgoing})

    # Lifecycle

    async def wait_idle(self) -> None:
        """Wait for all background work, including cache writes, to finish."""
        await self.tasks.drain()

    async def close(self) -> None:
        """End the session: stop background work and clear all state.

        Cache writes already scheduled are allowed to finish first.
        """
        await self.cache_writer.flush()
        await self.tasks.cancel_all()
        self.store.clear_all()
        self.dispatcher.connected = False
        logger.info("Chat session closed")
