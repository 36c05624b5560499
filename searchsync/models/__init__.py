"""SQLAlchemy ORM models package."""

from .search_queue import DocType, QueueItem
from .user import User

__all__ = [
    "DocType",
    "QueueItem",
    "User",
]
