"""Core module for session identity, exceptions, observables, and telemetry."""

from chatsync.core.exceptions import (
    CacheStoreError,
    ChatSyncError,
    MalformedPayloadError,
    TransportError,
    TransportUnavailableError,
)
from chatsync.core.observable import Observable
from chatsync.core.session import ROOM_KEY, USER_KEY, SessionContext
from chatsync.core.tasks import TaskTracker
from chatsync.core.telemetry import get_tracer, setup_all_instrumentation, setup_telemetry

__all__ = [
    "CacheStoreError",
    "ChatSyncError",
    "MalformedPayloadError",
    "TransportError",
    "TransportUnavailableError",
    "Observable",
    "ROOM_KEY",
    "USER_KEY",
    "SessionContext",
    "TaskTracker",
    "get_tracer",
    "setup_telemetry",
    "setup_all_instrumentation",
]
