"""Synchronization services."""

from chatsync.services.cache_store import (
    CacheStore,
    CacheWriter,
    RedisCacheStore,
    SqlCacheStore,
    create_cache_store,
)
from chatsync.services.chat_service import ChatService
from chatsync.services.conversation_store import ConversationStore
from chatsync.services.event_dispatcher import EventDispatcher, StreamingState
from chatsync.services.gateway_client import GatewayClient
from chatsync.services.pagination import PaginationController
from chatsync.services.reconciliation import ReconciliationEngine
from chatsync.services.transport import ChatTransport
from chatsync.services.unread import UnreadAggregator

__all__ = [
    "CacheStore",
    "CacheWriter",
    "ChatService",
    "ChatTransport",
    "ConversationStore",
    "EventDispatcher",
    "GatewayClient",
    "PaginationController",
    "ReconciliationEngine",
    "RedisCacheStore",
    "SqlCacheStore",
    "StreamingState",
    "UnreadAggregator",
    "create_cache_store",
]
