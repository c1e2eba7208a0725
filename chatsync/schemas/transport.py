"""Typed payloads exchanged with the chat gateway."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Dialogs(BaseModel):
    """Last message per conversation, split by conversation kind."""

    rooms: dict[str, Any] = Field(default_factory=dict)
    members: dict[str, Any] = Field(default_factory=dict)

    @field_validator("rooms", "members", mode="before")
    @classmethod
    def _missing_side_is_empty(cls, value: Any) -> Any:
        # A partial response contributes nothing from the missing side
        return value if isinstance(value, dict) else {}


class DialogsPayload(BaseModel):
    """Response of the "last messages" call."""

    dialogs: Dialogs = Field(default_factory=Dialogs)

    @field_validator("dialogs", mode="before")
    @classmethod
    def _missing_dialogs_is_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    def merged(self) -> dict[str, Any]:
        """Flatten rooms and members into one mapping keyed by conversation id."""
        merged = dict(self.dialogs.rooms)
        merged.update(self.dialogs.members)
        return merged


def merge_dialogs(payload: Any) -> dict[str, Any]:
    """Flatten a raw "last messages" response, tolerating missing parts."""
    if not isinstance(payload, dict):
        return {}
    return DialogsPayload.model_validate(payload).merged()


class TransportEvent(BaseModel):
    """Envelope of an event pushed over the real-time stream."""

    event: str = "unknown"
    data: Any = None

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> "TransportEvent":
        """Build an event from a decoded frame.

        Gateways name the event in "event", "type" or "code" and may send
        the payload inline instead of under "data".
        """
        event_type = frame.get("event") or frame.get("type") or frame.get("code") or "unknown"
        return cls(event=str(event_type), data=frame.get("data", frame))
