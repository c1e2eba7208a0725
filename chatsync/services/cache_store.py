"""Offline cache stores and the per-conversation write sequencer."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatsync.config import settings
from chatsync.core.exceptions import CacheStoreError
from chatsync.core.tasks import TaskTracker
from chatsync.db.repositories import ConversationCacheRepository
from chatsync.db.session import async_session_maker
from chatsync.models import ConversationCache
from chatsync.schemas.cache import CachedRecord
from chatsync.schemas.message import Message

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Durable per-conversation storage of the recent-message window."""

    async def put(self, record: CachedRecord) -> None:
        """Replace everything stored for the record's conversation."""
        ...

    async def get(self, conversation_id: str) -> CachedRecord | None:
        ...

    async def delete_all_for(self, conversation_id: str) -> None:
        ...

    async def load_all(self) -> list[CachedRecord]:
        ...


class RedisCacheStore:
    """Cache store keeping one JSON document per conversation in Redis."""

    INDEX_SUFFIX = "index"

    def __init__(self, redis: Redis, prefix: str | None = None):
        self.redis = redis
        self.prefix = prefix or settings.CACHE_KEY_PREFIX

    @property
    def index_key(self) -> str:
        return f"{self.prefix}{self.INDEX_SUFFIX}"

    def key(self, conversation_id: str) -> str:
        return f"{self.prefix}{conversation_id}"

    async def put(self, record: CachedRecord) -> None:
        """Delete and rewrite the conversation's document in one transaction."""
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(self.key(record.conversation_id))
                pipe.set(self.key(record.conversation_id), record.model_dump_json())
                pipe.sadd(self.index_key, record.conversation_id)
                await pipe.execute()
        except RedisError as e:
            raise CacheStoreError(record.conversation_id, str(e)) from e

    async def get(self, conversation_id: str) -> CachedRecord | None:
        try:
            raw = await self.redis.get(self.key(conversation_id))
        except RedisError as e:
            raise CacheStoreError(conversation_id, str(e)) from e
        return self._decode(conversation_id, raw)

    async def delete_all_for(self, conversation_id: str) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(self.key(conversation_id))
                pipe.srem(self.index_key, conversation_id)
                await pipe.execute()
        except RedisError as e:
            raise CacheStoreError(conversation_id, str(e)) from e

    async def load_all(self) -> list[CachedRecord]:
        """Load every cached conversation, skipping unreadable documents."""
        try:
            members = await self.redis.smembers(self.index_key)
            conversation_ids = sorted(
                m.decode() if isinstance(m, bytes) else m for m in members
            )
            if not conversation_ids:
                return []
            raw_records = await self.redis.mget([self.key(c) for c in conversation_ids])
        except RedisError as e:
            raise CacheStoreError(None, str(e)) from e

        records = []
        for conversation_id, raw in zip(conversation_ids, raw_records):
            record = self._decode(conversation_id, raw)
            if record is not None:
                records.append(record)
        return records

    def _decode(self, conversation_id: str, raw: bytes | str | None) -> CachedRecord | None:
        if raw is None:
            return None
        try:
            return CachedRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable cache entry for {conversation_id}: {e}")
            return None


class SqlCacheStore:
    """Cache store backed by the conversation_cache table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        self.session_maker = session_maker or async_session_maker

    async def put(self, record: CachedRecord) -> None:
        try:
            async with self.session_maker() as db:
                repo = ConversationCacheRepository(db)
                await repo.replace(
                    record.conversation_id,
                    messages=[m.model_dump(mode="json") for m in record.messages],
                    unread_count=record.unread_count,
                    last_message=(
                        record.last_message.model_dump(mode="json")
                        if record.last_message
                        else None
                    ),
                )
        except SQLAlchemyError as e:
            raise CacheStoreError(record.conversation_id, str(e)) from e

    async def get(self, conversation_id: str) -> CachedRecord | None:
        try:
            async with self.session_maker() as db:
                row = await ConversationCacheRepository(db).get(conversation_id)
        except SQLAlchemyError as e:
            raise CacheStoreError(conversation_id, str(e)) from e
        return self._to_record(row) if row else None

    async def delete_all_for(self, conversation_id: str) -> None:
        try:
            async with self.session_maker() as db:
                await ConversationCacheRepository(db).delete_for_conversation(conversation_id)
        except SQLAlchemyError as e:
            raise CacheStoreError(conversation_id, str(e)) from e

    async def load_all(self) -> list[CachedRecord]:
        try:
            async with self.session_maker() as db:
                rows = await ConversationCacheRepository(db).list_all()
        except SQLAlchemyError as e:
            raise CacheStoreError(None, str(e)) from e

        records = []
        for row in rows:
            record = self._to_record(row)
            if record is not None:
                records.append(record)
        return records

    def _to_record(self, row: ConversationCache) -> CachedRecord | None:
        try:
            return CachedRecord(
                conversation_id=row.conversation_id,
                messages=row.messages or [],
                unread_count=row.unread_count or 0,
                last_message=row.last_message or None,
            )
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable cache row for {row.conversation_id}: {e}")
            return None


def create_cache_store(backend: str | None = None) -> CacheStore:
    """Build the cache store selected by configuration."""
    backend = backend or settings.CACHE_BACKEND
    if backend == "redis":
        return RedisCacheStore(Redis.from_url(settings.REDIS_URL))
    if backend == "sql":
        return SqlCacheStore()
    raise ValueError(f"Unknown cache backend: {backend}")


class CacheWriter:
    """Fire-and-forget cache writes, kept in order per conversation.

    Each write for a conversation starts only after the previous write for
    the same conversation has finished, so the last scheduled snapshot is
    the one left in the store. Failures are logged and do not stop later
    writes.
    """

    def __init__(self, store: CacheStore, tasks: TaskTracker, window: int | None = None):
        self.store = store
        self.tasks = tasks
        self.window = settings.CACHE_WINDOW if window is None else window
        self._tails: dict[str, asyncio.Task] = {}

    def persist(
        self,
        conversation_id: str,
        messages: list[Message],
        unread_count: int,
        last_message: Message | None,
        *,
        mark_read: bool = False,
    ) -> asyncio.Task:
        """Schedule a snapshot write of a conversation.

        Args:
            conversation_id: The conversation ID
            messages: Timeline, newest first; only the newest window is kept
            unread_count: Unread counter to store
            last_message: Last-message summary to store
            mark_read: Store the messages with their read flag set
        """
        window = messages[: self.window]
        if mark_read:
            window = [m.model_copy(update={"read_flag": True}) for m in window]
        record = CachedRecord(
            conversation_id=conversation_id,
            messages=window,
            unread_count=max(unread_count, 0),
            last_message=last_message,
        )
        return self._schedule(conversation_id, lambda: self.store.put(record))

    def zero_unread(self, conversation_id: str) -> asyncio.Task:
        """Schedule clearing the stored unread counter of a conversation."""

        async def write() -> None:
            record = await self.store.get(conversation_id)
            if record is None:
                return
            await self.store.put(record.model_copy(update={"unread_count": 0}))

        return self._schedule(conversation_id, write)

    async def flush(self) -> None:
        """Wait for every scheduled write to finish."""
        # The tail of each conversation only finishes after its predecessors
        while self._tails:
            await asyncio.wait(list(self._tails.values()))

    def _schedule(
        self, conversation_id: str, write: Callable[[], Awaitable[None]]
    ) -> asyncio.Task:
        previous = self._tails.get(conversation_id)
        task = self.tasks.spawn(
            self._run_after(previous, conversation_id, write),
            name=f"cache-write:{conversation_id}",
        )
        self._tails[conversation_id] = task
        task.add_done_callback(lambda t: self._release(conversation_id, t))
        return task

    async def _run_after(
        self,
        previous: asyncio.Task | None,
        conversation_id: str,
        write: Callable[[], Awaitable[None]],
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await write()
            logger.debug(f"Cached conversation {conversation_id}")
        except CacheStoreError as e:
            logger.error(f"Cache write failed for {conversation_id}: {e}")

    def _release(self, conversation_id: str, task: asyncio.Task) -> None:
        if self._tails.get(conversation_id) is task:
            del self._tails[conversation_id]
