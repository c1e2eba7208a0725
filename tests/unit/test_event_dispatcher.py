"""Unit tests for EventDispatcher."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from chatsync.core.exceptions import TransportError
from chatsync.core.tasks import TaskTracker
from chatsync.services.conversation_store import ConversationStore
from chatsync.services.event_dispatcher import EventDispatcher, StreamingState


@pytest.fixture
def tasks():
    return TaskTracker()


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def refresh_unread():
    return AsyncMock(return_value={})


@pytest.fixture
def sound_player():
    return MagicMock()


@pytest.fixture
def dispatcher(session_context, store, mock_transport, tasks, refresh_unread, sound_player):
    return EventDispatcher(
        session_context,
        store,
        mock_transport,
        tasks,
        refresh_unread=refresh_unread,
        sound_player=sound_player,
    )


class TestIncomingMessages:
    """Tests for routing of incoming messages."""

    @pytest.mark.asyncio
    async def test_peer_message_routed_to_sender(
        self, dispatcher, store, tasks, refresh_unread, sound_player, make_raw_message
    ):
        message = dispatcher.on_message(make_raw_message("m1", 1000, sender="u2"))
        await tasks.drain()

        assert message is not None
        assert store.get_timeline("u2") == [message]
        assert store.get_last_message("u2") == message
        refresh_unread.assert_awaited_once()
        sound_player.play_message_sound.assert_called_once()

    @pytest.mark.asyncio
    async def test_room_message_routed_to_company(
        self, dispatcher, store, tasks, make_raw_message
    ):
        message = dispatcher.on_message(
            make_raw_message("m1", 1000, sender="u2", receiver=None, room="co1")
        )
        await tasks.drain()

        assert store.get_timeline("co1") == [message]
        assert store.get_timeline("u2") == []

    @pytest.mark.asyncio
    async def test_foreign_room_message_dropped(
        self, dispatcher, store, tasks, refresh_unread, make_raw_message
    ):
        message = dispatcher.on_message(
            make_raw_message("m1", 1000, receiver=None, room="other-company")
        )
        await tasks.drain()

        assert message is None
        assert store.timelines.value == {}
        refresh_unread.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replayed_message_has_no_side_effects(
        self, dispatcher, store, tasks, refresh_unread, sound_player, make_raw_message
    ):
        """Test that a message delivered twice notifies, refreshes and sounds once."""
        pulses = []
        store.new_message.subscribe(pulses.append)
        raw = make_raw_message("m1", 1000)

        first = dispatcher.on_message(raw)
        replay = dispatcher.on_message(raw)
        await tasks.drain()

        assert first is not None
        assert replay is None
        assert [m.id for m in store.get_timeline("u2")] == ["m1"]
        assert pulses == [{"u2": first}, {}]
        assert refresh_unread.await_count == 1
        sound_player.play_message_sound.assert_called_once()

    def test_malformed_message_dropped(self, dispatcher, store, sound_player):
        assert dispatcher.on_message({"id": "m1"}) is None
        assert store.timelines.value == {}
        sound_player.play_message_sound.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "state,plays",
        [
            (StreamingState.STARTED, False),
            (StreamingState.INITIATED, False),
            (StreamingState.FINISHED, True),
            (StreamingState.ERROR, True),
            (StreamingState.UNKNOWN, True),
        ],
    )
    async def test_sound_suppressed_during_streaming(
        self, session_context, store, mock_transport, tasks, refresh_unread, make_raw_message,
        state, plays,
    ):
        """Test that the message sound is muted while a call is ringing or live."""
        player = MagicMock()
        dispatcher = EventDispatcher(
            session_context,
            store,
            mock_transport,
            tasks,
            refresh_unread=refresh_unread,
            sound_player=player,
            streaming_state=lambda: state,
        )

        dispatcher.on_message(make_raw_message("m1", 1000))
        await tasks.drain()

        assert player.play_message_sound.called is plays


class TestSendMessage:
    """Tests for optimistic sends."""

    @pytest.mark.asyncio
    async def test_peer_send_echoes_and_uses_user_key(
        self, dispatcher, store, tasks, mock_transport
    ):
        store.save_draft("u2", "hi the")

        message = dispatcher.send_message("u2", "hi there")

        assert message.is_outgoing is True
        assert message.sender_id == "u1"
        assert message.receiver_id == "u2"
        assert message.room_id is None
        assert message.id.startswith("local-")
        assert store.get_timeline("u2")[0] == message
        assert store.get_last_message("u2") == message
        assert store.get_draft("u2") is None

        await tasks.drain()
        mock_transport.send_message.assert_awaited_once_with("userId", "u2", "hi there")

    @pytest.mark.asyncio
    async def test_company_send_uses_room_key(self, dispatcher, tasks, mock_transport):
        message = dispatcher.send_message("co1", "hello team")
        await tasks.drain()

        assert message.room_id == "co1"
        assert message.receiver_id is None
        mock_transport.send_message.assert_awaited_once_with("roomId", "co1", "hello team")

    @pytest.mark.asyncio
    async def test_send_failure_keeps_local_echo(self, dispatcher, store, tasks, mock_transport):
        mock_transport.send_message.side_effect = TransportError("rejected", status_code=400)

        message = dispatcher.send_message("u2", "hello")
        await tasks.drain()

        assert store.get_timeline("u2") == [message]


class TestConnectionChanges:
    """Tests for connection state tracking."""

    @pytest.mark.asyncio
    async def test_refresh_only_on_transition_to_connected(
        self, dispatcher, tasks, refresh_unread
    ):
        seen = []
        dispatcher.room_added.subscribe(seen.append)

        dispatcher.on_connection_changed(True)
        dispatcher.on_connection_changed(True)
        dispatcher.on_connection_changed(False)
        await tasks.drain()

        assert seen == [True, True, False]
        assert dispatcher.connected is False
        assert refresh_unread.await_count == 1
