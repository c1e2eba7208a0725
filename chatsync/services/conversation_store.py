"""In-memory conversation state shared with the presentation layer."""

import logging
from collections.abc import Iterable, Mapping

from chatsync.core.observable import Observable
from chatsync.schemas.message import Message
from chatsync.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)


def _newest_first(messages: Iterable[Message]) -> list[Message]:
    """Drop repeated ids and order by timestamp, newest first.

    The sort is stable, so messages sharing a timestamp keep their order.
    """
    seen: set[str] = set()
    unique: list[Message] = []
    for message in messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        unique.append(message)
    return sorted(unique, key=lambda m: m.timestamp, reverse=True)


class ConversationStore:
    """Owns timelines, last messages, unread counts and consistency flags.

    Every mutation is synchronous and replaces the affected mapping, so
    subscribers see immutable snapshots in the order the mutations were
    applied. The consistency flag of a conversation is recomputed after each
    change to its timeline or last message.
    """

    def __init__(self, reconciler: ReconciliationEngine | None = None):
        self.reconciler = reconciler or ReconciliationEngine()

        self.timelines: Observable[dict[str, tuple[Message, ...]]] = Observable({})
        self.last_messages: Observable[dict[str, Message]] = Observable({})
        self.unread: Observable[dict[str, int]] = Observable({})
        self.new_message: Observable[dict[str, Message]] = Observable({})
        self.drafts: Observable[dict[str, str]] = Observable({})

        self._corresponds: dict[str, bool] = {}

    # Timelines

    def get_timeline(self, conversation_id: str) -> list[Message]:
        """Get a conversation's messages, newest first."""
        return list(self.timelines.value.get(conversation_id, ()))

    def set_timeline(self, conversation_id: str, messages: Iterable[Message]) -> list[Message]:
        """Replace a conversation's timeline."""
        timeline = _newest_first(messages)
        self._publish_timeline(conversation_id, timeline)
        return timeline

    def prepend_message(self, conversation_id: str, message: Message) -> list[Message]:
        """Insert a message at the newest position of its timeline.

        A message older than the current head is placed by timestamp so the
        head always carries the newest timestamp; a repeated id is ignored.
        """
        timeline = self.get_timeline(conversation_id)
        if any(existing.id == message.id for existing in timeline):
            logger.debug(f"Message {message.id} already in {conversation_id}, skipping")
            return timeline

        index = 0
        while index < len(timeline) and timeline[index].timestamp > message.timestamp:
            index += 1
        timeline.insert(index, message)
        self._publish_timeline(conversation_id, timeline)
        return timeline

    def append_older(self, conversation_id: str, messages: Iterable[Message]) -> list[Message]:
        """Merge older messages at the tail without repeating known ids."""
        timeline = self.get_timeline(conversation_id)
        known = {message.id for message in timeline}
        additions = [message for message in messages if message.id not in known]
        if not additions:
            return timeline

        merged = _newest_first(timeline + additions)
        self._publish_timeline(conversation_id, merged)
        return merged

    def receive_message(self, conversation_id: str, message: Message) -> bool:
        """Apply a new message: timeline, last message and the new-message pulse.

        The last message only moves forward: a late message placed below
        the head leaves it on the newest known message.

        Returns:
            False when the id was already in the timeline and nothing changed
        """
        known = self.timelines.value.get(conversation_id, ())
        if any(existing.id == message.id for existing in known):
            logger.debug(f"Message {message.id} already received in {conversation_id}")
            return False

        self.new_message.pulse({conversation_id: message}, {})
        newest = self.prepend_message(conversation_id, message)[0]
        current = self.get_last_message(conversation_id)
        if current is None or newest.timestamp >= current.timestamp:
            self.set_last_message(conversation_id, newest)
        return True

    def _publish_timeline(self, conversation_id: str, timeline: list[Message]) -> None:
        timelines = dict(self.timelines.value)
        timelines[conversation_id] = tuple(timeline)
        self.timelines.set(timelines)
        self._reconcile(conversation_id)

    # Last messages

    def get_last_message(self, conversation_id: str) -> Message | None:
        return self.last_messages.value.get(conversation_id)

    def set_last_message(self, conversation_id: str, message: Message) -> None:
        last_messages = dict(self.last_messages.value)
        last_messages[conversation_id] = message
        self.last_messages.set(last_messages)
        self._reconcile(conversation_id)

    def set_last_messages(self, mapping: Mapping[str, Message]) -> None:
        """Replace the whole last-message mapping."""
        previous = set(self.last_messages.value)
        self.last_messages.set(dict(mapping))
        for conversation_id in previous | set(mapping):
            self._reconcile(conversation_id)

    # Unread counters

    def get_unread(self, conversation_id: str) -> int:
        return self.unread.value.get(conversation_id, 0)

    def set_unread_all(self, mapping: Mapping[str, int]) -> None:
        """Replace the unread mapping; absent conversations count as zero."""
        self.unread.set(dict(mapping))

    # Drafts

    def get_draft(self, conversation_id: str) -> str | None:
        return self.drafts.value.get(conversation_id)

    def save_draft(self, conversation_id: str, text: str | None) -> None:
        """Keep unsent text for a conversation; empty text clears it."""
        drafts = dict(self.drafts.value)
        if text:
            drafts[conversation_id] = text
        else:
            drafts.pop(conversation_id, None)
        self.drafts.set(drafts)

    # Consistency

    def corresponds(self, conversation_id: str) -> bool:
        return self._corresponds.get(conversation_id, False)

    def _reconcile(self, conversation_id: str) -> None:
        self._corresponds[conversation_id] = self.reconciler.corresponds(
            self.timelines.value.get(conversation_id, ()),
            self.last_messages.value.get(conversation_id),
        )

    # Lifecycle

    def load_snapshot(
        self,
        timelines: Mapping[str, Iterable[Message]],
        last_messages: Mapping[str, Message],
        unread: Mapping[str, int],
    ) -> None:
        """Warm the store from persisted records in one pass."""
        merged = dict(self.timelines.value)
        for conversation_id, messages in timelines.items():
            merged[conversation_id] = tuple(_newest_first(messages))
        self.timelines.set(merged)

        merged_last = dict(self.last_messages.value)
        merged_last.update(last_messages)
        self.last_messages.set(merged_last)

        merged_unread = dict(self.unread.value)
        merged_unread.update(unread)
        self.unread.set(merged_unread)

        for conversation_id in set(timelines) | set(last_messages):
            self._reconcile(conversation_id)

    def clear_all(self) -> None:
        """Reset every conversation; used on logout."""
        self.unread.set({})
        self.timelines.set({})
        self.last_messages.set({})
        self.drafts.set({})
        self._corresponds.clear()
