"""Normalization of the server's unread counters."""

import logging
from collections.abc import Mapping
from typing import Any

from chatsync.core.session import SessionContext

logger = logging.getLogger(__name__)

COMMON_ROOM_KEY = "commonRoom"


class UnreadAggregator:
    """Turns the raw unread payload into a per-conversation mapping."""

    def __init__(self, session: SessionContext):
        self.session = session

    def apply(self, payload: Mapping[str, Any] | None) -> dict[str, int]:
        """Normalize an unread payload.

        A positive aggregate under the reserved common-room key is moved to
        the operator's company id; a zero aggregate is left where it is.
        Entries whose count is not a non-negative integer are dropped.

        Args:
            payload: Raw mapping of conversation id to unread count

        Returns:
            The complete unread mapping to publish
        """
        if not payload:
            return {}

        unread: dict[str, int] = {}
        for key, value in payload.items():
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                logger.warning(f"Dropping unread entry {key!r}: {value!r}")
                continue
            unread[str(key)] = value

        common = unread.get(COMMON_ROOM_KEY, 0)
        if common > 0:
            del unread[COMMON_ROOM_KEY]
            unread[self.session.company_id] = common

        return unread
