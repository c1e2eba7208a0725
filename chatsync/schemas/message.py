"""Message schemas and the wire decode boundary."""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from chatsync.core.exceptions import MalformedPayloadError

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class Participant(BaseModel):
    """Sender or receiver of a wire message."""

    id: str | None = None
    user_id: str | None = Field(None, validation_alias="userId")

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> Any:
        return _as_str(value)

    @property
    def identifier(self) -> str | None:
        """User identifier used for routing, falling back to the record id."""
        return self.user_id or self.id


class Room(BaseModel):
    """Room reference attached to a wire message."""

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> Any:
        return _as_str(value)


class RawMessage(BaseModel):
    """Message as delivered by the chat gateway."""

    id: str = Field(..., validation_alias=AliasChoices("id", "_id", "messageId"))
    text: str = Field("", validation_alias=AliasChoices("message", "text"))
    timestamp: int
    sender: Participant
    receiver: Participant | None = None
    room: Room | None = None
    read: bool = Field(False, validation_alias=AliasChoices("readed", "read"))

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> Any:
        return _as_str(value)

    @field_validator("room", mode="before")
    @classmethod
    def _room_reference(cls, value: Any) -> Any:
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            return {"id": value}
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _millis(cls, value: Any) -> Any:
        # Gateways send milliseconds as floats when built from seconds * 1000
        if isinstance(value, float):
            return int(value)
        return value

    def to_message(self, current_user_id: str) -> "Message":
        """Convert to the domain message for the signed-in user."""
        sender_id = self.sender.identifier
        if not sender_id:
            raise MalformedPayloadError("message", f"message '{self.id}' has no sender")
        return Message(
            id=self.id,
            sender_id=sender_id,
            receiver_id=self.receiver.identifier if self.receiver else None,
            room_id=self.room.id if self.room else None,
            text=self.text,
            timestamp=self.timestamp,
            is_outgoing=sender_id == current_user_id,
            read_flag=self.read,
        )


class Message(BaseModel):
    """Immutable chat message; identity is its id, ordering key its timestamp."""

    model_config = ConfigDict(frozen=True)

    id: str
    sender_id: str
    receiver_id: str | None = None
    room_id: str | None = None
    text: str
    timestamp: int = Field(..., description="Milliseconds since the epoch")
    is_outgoing: bool = False
    read_flag: bool = False

    def belongs_to(self, conversation_id: str) -> bool:
        """Check whether the message may be shown in a conversation.

        Messages without a room are peer messages and always match; room
        messages only match their own room.
        """
        return self.room_id is None or self.room_id == conversation_id


def decode_message(raw: Any, current_user_id: str) -> Message:
    """Decode a single wire message.

    Raises:
        MalformedPayloadError: If the payload is not a valid message
    """
    if not isinstance(raw, dict):
        raise MalformedPayloadError("message", f"expected object, got {type(raw).__name__}")
    try:
        return RawMessage.model_validate(raw).to_message(current_user_id)
    except ValidationError as e:
        raise MalformedPayloadError("message", str(e)) from e


def decode_messages(batch: Iterable[Any] | None, current_user_id: str) -> list[Message]:
    """Decode a batch of wire messages, dropping malformed entries."""
    messages: list[Message] = []
    for raw in batch or ():
        try:
            messages.append(decode_message(raw, current_user_id))
        except MalformedPayloadError as e:
            logger.warning(f"Dropping message from batch: {e}")
    return messages
