"""Pydantic schemas for wire payloads and cache records."""

from chatsync.schemas.cache import CachedRecord
from chatsync.schemas.message import (
    Message,
    Participant,
    RawMessage,
    Room,
    decode_message,
    decode_messages,
)
from chatsync.schemas.transport import Dialogs, DialogsPayload, TransportEvent, merge_dialogs

__all__ = [
    # Cache
    "CachedRecord",
    # Message
    "Message",
    "Participant",
    "RawMessage",
    "Room",
    "decode_message",
    "decode_messages",
    # Transport
    "Dialogs",
    "DialogsPayload",
    "TransportEvent",
    "merge_dialogs",
]
