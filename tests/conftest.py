"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chatsync.core.session import SessionContext
from chatsync.db.base import Base
from chatsync.models import ConversationCache  # noqa: F401
from chatsync.schemas.message import Message

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

USER_ID = "u1"
COMPANY_ID = "co1"


@pytest.fixture
async def async_engine():
    """Create async engine for testing."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_context() -> SessionContext:
    """Signed-in operator u1 of company co1."""
    return SessionContext(user_id=USER_ID, company_id=COMPANY_ID)


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Factory for domain messages."""

    def factory(
        id: str,
        timestamp: int,
        sender_id: str = "u2",
        receiver_id: str | None = USER_ID,
        room_id: str | None = None,
        text: str | None = None,
    ) -> Message:
        return Message(
            id=id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            room_id=room_id,
            text=text or f"message {id}",
            timestamp=timestamp,
            is_outgoing=sender_id == USER_ID,
        )

    return factory


@pytest.fixture
def make_raw_message() -> Callable[..., dict[str, Any]]:
    """Factory for gateway wire messages."""

    def factory(
        id: str,
        timestamp: int,
        sender: str = "u2",
        receiver: str | None = USER_ID,
        room: str | None = None,
        text: str = "hello",
    ) -> dict[str, Any]:
        raw: dict[str, Any] = {
            "id": id,
            "message": text,
            "timestamp": timestamp,
            "sender": {"id": f"record-{sender}", "userId": sender},
        }
        if receiver is not None:
            raw["receiver"] = {"id": f"record-{receiver}", "userId": receiver}
        if room is not None:
            raw["room"] = {"id": room}
        return raw

    return factory


@pytest.fixture
def mock_transport():
    """Mock chat transport for testing."""
    transport = MagicMock()
    transport.is_reachable = MagicMock(return_value=True)
    transport.fetch_unread_status = AsyncMock(return_value={})
    transport.fetch_last_messages = AsyncMock(return_value={})
    transport.fetch_messages = AsyncMock(return_value=[])
    transport.send_message = AsyncMock(return_value={"status": "ok"})
    transport.mark_read = AsyncMock(return_value={"status": "ok"})
    return transport


@pytest.fixture
def mock_cache_store():
    """Mock offline cache store for testing."""
    store = MagicMock()
    store.put = AsyncMock()
    store.get = AsyncMock(return_value=None)
    store.delete_all_for = AsyncMock()
    store.load_all = AsyncMock(return_value=[])
    return store


@pytest.fixture
def sample_message_event(make_raw_message) -> dict[str, Any]:
    """Sample WebSocket message event."""
    return {
        "event": "message",
        "data": make_raw_message("m-live", 1706140800000, sender="u2"),
    }


@pytest.fixture
def sample_connected_event() -> dict[str, Any]:
    """Sample WebSocket room added event."""
    return {"event": "room_added", "data": {"roomId": COMPANY_ID}}
