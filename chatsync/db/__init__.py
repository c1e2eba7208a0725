"""Database module."""

from chatsync.db.base import Base
from chatsync.db.session import async_session_maker, init_db

__all__ = ["Base", "async_session_maker", "init_db"]
