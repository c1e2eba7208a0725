"""Routing of real-time transport events into conversation state."""

import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from chatsync.core.exceptions import MalformedPayloadError, TransportError
from chatsync.core.observable import Observable
from chatsync.core.session import SessionContext
from chatsync.core.tasks import TaskTracker
from chatsync.schemas.message import Message, decode_message
from chatsync.services.conversation_store import ConversationStore
from chatsync.services.transport import ChatTransport

logger = logging.getLogger(__name__)


class StreamingState(str, Enum):
    """State of the operator's outbound call/streaming session."""

    STARTED = "started"
    INITIATED = "initiated"
    FINISHED = "finished"
    ERROR = "error"
    UNKNOWN = "unknown"


# A ringing or live call must not be interrupted by the message sound
SOUND_SUPPRESSING_STATES = frozenset({StreamingState.STARTED, StreamingState.INITIATED})


class MessageSoundPlayer(Protocol):
    def play_message_sound(self) -> None: ...


class EventDispatcher:
    """Applies transport events and local sends to the conversation store."""

    def __init__(
        self,
        session: SessionContext,
        store: ConversationStore,
        transport: ChatTransport,
        tasks: TaskTracker,
        refresh_unread: Callable[[], Awaitable[Any]],
        sound_player: MessageSoundPlayer | None = None,
        streaming_state: Callable[[], StreamingState] | None = None,
    ):
        self.session = session
        self.store = store
        self.transport = transport
        self.tasks = tasks
        self.refresh_unread = refresh_unread
        self.sound_player = sound_player
        self.streaming_state = streaming_state or (lambda: StreamingState.UNKNOWN)

        self.connected = False
        self.room_added: Observable[bool] = Observable(False)

    def on_connection_changed(self, connected: bool) -> None:
        """Track connectivity; becoming connected refreshes unread counters."""
        was_connected = self.connected
        self.connected = connected
        self.room_added.set(connected)

        if connected and not was_connected:
            logger.info("Chat transport connected, refreshing unread status")
            self._spawn_unread_refresh()
        elif not connected and was_connected:
            logger.warning("Chat transport disconnected")

    def on_message(self, raw: Any) -> Message | None:
        """Apply a "message arrived" event.

        Peer messages (with a receiver) belong to the sender's conversation;
        everything else belongs to the company room.

        Returns:
            The applied message, or None when the event was dropped
        """
        try:
            message = decode_message(raw, self.session.user_id)
        except MalformedPayloadError as e:
            logger.warning(f"Dropping incoming message: {e}")
            return None

        if message.receiver_id is not None:
            conversation_id = message.sender_id
        else:
            conversation_id = self.session.company_id

        if not message.belongs_to(conversation_id):
            logger.debug(
                f"Message {message.id} for room {message.room_id} does not belong to {conversation_id}"
            )
            return None

        if not self.store.receive_message(conversation_id, message):
            # Replayed event, e.g. after a reconnect
            return None
        logger.debug(f"Message {message.id} routed to {conversation_id}")

        self._spawn_unread_refresh()
        self._play_sound()
        return message

    def send_message(self, conversation_id: str, text: str) -> Message:
        """Echo a message locally, then send it through the transport."""
        message = Message(
            id=f"local-{uuid4()}",
            sender_id=self.session.user_id,
            receiver_id=None if self.session.is_company(conversation_id) else conversation_id,
            room_id=conversation_id if self.session.is_company(conversation_id) else None,
            text=text,
            timestamp=int(time.time() * 1000),
            is_outgoing=True,
            read_flag=True,
        )
        self.store.receive_message(conversation_id, message)
        self.store.save_draft(conversation_id, None)

        key = self.session.routing_key(conversation_id)
        self.tasks.spawn(
            self._send(key, conversation_id, text),
            name=f"send:{conversation_id}",
        )
        return message

    async def _send(self, key: str, conversation_id: str, text: str) -> None:
        try:
            await self.transport.send_message(key, conversation_id, text)
        except TransportError as e:
            logger.error(f"Failed to send message to {conversation_id}: {e}")

    def _spawn_unread_refresh(self) -> None:
        self.tasks.spawn(self.refresh_unread(), name="unread-refresh")

    def _play_sound(self) -> None:
        if self.sound_player is None:
            return
        state = self.streaming_state()
        if state in SOUND_SUPPRESSING_STATES:
            logger.debug(f"Message sound suppressed, streaming state is {state.value}")
            return
        self.sound_player.play_message_sound()
