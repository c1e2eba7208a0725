"""Integration tests for ChatService over an in-memory store and SQLite cache."""

import asyncio

import pytest

from chatsync.core.exceptions import CacheStoreError, TransportUnavailableError
from chatsync.schemas.cache import CachedRecord
from chatsync.services.cache_store import SqlCacheStore
from chatsync.services.chat_service import ChatService
from chatsync.services.reconciliation import ReconciliationEngine


def _ids(messages):
    return [m.id for m in messages]


@pytest.fixture
def service(session_context, mock_transport, mock_cache_store):
    return ChatService(
        session_context,
        mock_transport,
        mock_cache_store,
        reconciler=ReconciliationEngine(min_messages=8),
    )


class TestUnreadAndLastMessages:
    """Tests for unread counters and last messages."""

    @pytest.mark.asyncio
    async def test_refresh_unread_publishes_normalized_mapping(self, service, mock_transport):
        mock_transport.fetch_unread_status.return_value = {"commonRoom": 5, "u1": 2}
        seen = []
        service.unread_status.subscribe(seen.append)

        service.request_unread_status()
        await service.wait_idle()

        assert seen == [{"co1": 5, "u1": 2}]
        mock_transport.fetch_unread_status.assert_awaited_once_with("co1")

    @pytest.mark.asyncio
    async def test_refresh_unread_failure_keeps_mapping(self, service, mock_transport):
        service.store.set_unread_all({"u2": 1})
        mock_transport.fetch_unread_status.side_effect = TransportUnavailableError("offline")

        assert await service.refresh_unread_status() == {"u2": 1}
        assert service.unread_status.value == {"u2": 1}

    @pytest.mark.asyncio
    async def test_request_last_messages(self, service, mock_transport, make_raw_message):
        mock_transport.fetch_last_messages.return_value = {
            "co1": make_raw_message("r1", 2000, receiver=None, room="co1"),
            "u2": make_raw_message("p1", 1000),
            "u3": {"id": "broken"},
            "co2": make_raw_message("r2", 3000, receiver=None, room="co1"),
        }
        completed = []

        service.request_last_messages(completed.append)
        await service.wait_idle()

        assert set(service.last_messages.value) == {"co1", "u2"}
        assert service.last_messages.value["co1"].id == "r1"
        assert completed == [service.last_messages.value]


class TestMessages:
    """Tests for sending, receiving and mark-read."""

    @pytest.mark.asyncio
    async def test_incoming_then_send(self, service, mock_transport, make_raw_message):
        received = service.handle_incoming_message(make_raw_message("m1", 1000))
        sent = service.send_message("u2", "reply")
        await service.wait_idle()

        assert _ids(service.messages.value["u2"]) == [sent.id, received.id]
        assert service.last_messages.value["u2"] == sent
        mock_transport.send_message.assert_awaited_once_with("userId", "u2", "reply")

    @pytest.mark.asyncio
    async def test_mark_read_zeroes_cache_and_refreshes(
        self, service, mock_transport, mock_cache_store, make_message
    ):
        """Test that mark-read clears the cached counter and refetches unread."""
        mock_cache_store.get.return_value = CachedRecord(
            conversation_id="u2", messages=[make_message("m1", 1000)], unread_count=2
        )
        mock_transport.fetch_unread_status.return_value = {"u2": 0}

        service.mark_read(["m1"], "u2")
        await service.wait_idle()

        mock_transport.mark_read.assert_awaited_once_with(["m1"])
        assert mock_cache_store.put.await_args.args[0].unread_count == 0
        assert service.unread_status.value == {"u2": 0}

    @pytest.mark.asyncio
    async def test_drafts(self, service):
        service.save_draft("u2", "later")

        assert service.get_draft("u2") == "later"
        assert service.drafts.value == {"u2": "later"}

    @pytest.mark.asyncio
    async def test_reachability(self, service, mock_transport):
        assert service.is_reachable() is False

        service.handle_connection_changed(True)
        assert service.is_reachable() is True

        mock_transport.is_reachable.return_value = False
        assert service.is_reachable() is False
        await service.wait_idle()


class TestCacheWarmup:
    """End-to-end tests over the SQLite cache."""

    @pytest.mark.asyncio
    async def test_warm_cache_corresponds_and_skips_fetch(
        self, session_context, session_maker, mock_transport, make_message, make_raw_message
    ):
        """Test warm-up, a cache-served initial load and a live message on top."""
        cache = SqlCacheStore(session_maker)
        cached = [make_message(f"m{i}", 10_000 - i) for i in range(10)]
        await cache.put(
            CachedRecord(
                conversation_id="u2",
                messages=cached,
                unread_count=1,
                last_message=cached[0],
            )
        )
        service = ChatService(
            session_context,
            mock_transport,
            cache,
            reconciler=ReconciliationEngine(min_messages=8),
        )

        assert await service.load_cached_messages() == 1
        assert service.store.corresponds("u2") is True
        assert service.unread_status.value == {"u2": 1}

        completed = []
        timeline = service.request_messages("u2", completed.append)
        await service.wait_idle()

        assert _ids(timeline) == _ids(cached)
        mock_transport.fetch_messages.assert_not_awaited()

        service.handle_incoming_message(make_raw_message("live", 20_000))
        await service.wait_idle()

        assert service.messages.value["u2"][0].id == "live"
        assert service.store.corresponds("u2") is True

    @pytest.mark.asyncio
    async def test_initial_fetch_persists_window(
        self, session_context, session_maker, mock_transport, make_raw_message
    ):
        cache = SqlCacheStore(session_maker)
        service = ChatService(session_context, mock_transport, cache)
        mock_transport.fetch_messages.return_value = [
            make_raw_message("m2", 2000),
            make_raw_message("m1", 1000, sender="u1", receiver="u2"),
        ]

        service.request_messages("u2")
        await service.wait_idle()

        record = await cache.get("u2")
        assert _ids(record.messages) == ["m2", "m1"]
        assert all(m.read_flag for m in record.messages)
        assert record.messages[1].is_outgoing is True

    @pytest.mark.asyncio
    async def test_cache_failure_is_not_fatal(self, service, mock_cache_store):
        mock_cache_store.load_all.side_effect = CacheStoreError(None, "locked")

        assert await service.load_cached_messages() == 0
        assert service.messages.value == {}

    @pytest.mark.asyncio
    async def test_close_finishes_scheduled_cache_writes(
        self, service, mock_cache_store, make_message
    ):
        """Test that writes queued before logout still reach the cache."""
        written = []

        async def slow_put(record):
            await asyncio.sleep(0.01)
            written.append((record.conversation_id, record.unread_count))

        mock_cache_store.put.side_effect = slow_put
        service.cache_writer.persist("u2", [make_message("m1", 1000)], 1, None)
        service.cache_writer.persist("u2", [make_message("m2", 2000)], 2, None)
        service.cache_writer.persist("co1", [make_message("r1", 1500, room_id="co1")], 0, None)

        await service.close()

        assert sorted(written) == [("co1", 0), ("u2", 1), ("u2", 2)]
        assert written.index(("u2", 1)) < written.index(("u2", 2))
        assert service.cache_writer._tails == {}

    @pytest.mark.asyncio
    async def test_close_clears_state(self, service, make_raw_message):
        service.handle_connection_changed(True)
        service.handle_incoming_message(make_raw_message("m1", 1000))
        service.save_draft("u2", "draft")

        await service.close()

        assert service.messages.value == {}
        assert service.last_messages.value == {}
        assert service.drafts.value == {}
        assert service.is_reachable() is False
