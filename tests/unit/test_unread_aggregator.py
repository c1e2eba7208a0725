"""Unit tests for UnreadAggregator."""

from chatsync.services.unread import COMMON_ROOM_KEY, UnreadAggregator


class TestUnreadAggregator:
    """Tests for unread payload normalization."""

    def test_common_room_moved_to_company(self, session_context):
        """Test that a positive common-room count is keyed by the company id."""
        aggregator = UnreadAggregator(session_context)

        unread = aggregator.apply({COMMON_ROOM_KEY: 5, "u1": 2})

        assert unread == {"co1": 5, "u1": 2}

    def test_zero_common_room_left_in_place(self, session_context):
        aggregator = UnreadAggregator(session_context)

        unread = aggregator.apply({COMMON_ROOM_KEY: 0, "u2": 1})

        assert unread == {COMMON_ROOM_KEY: 0, "u2": 1}
        assert "co1" not in unread

    def test_empty_payload(self, session_context):
        aggregator = UnreadAggregator(session_context)

        assert aggregator.apply({}) == {}
        assert aggregator.apply(None) == {}

    def test_invalid_counts_dropped(self, session_context):
        aggregator = UnreadAggregator(session_context)

        unread = aggregator.apply({"u2": -1, "u3": "7", "u4": True, "u5": 3})

        assert unread == {"u5": 3}
