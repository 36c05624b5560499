"""Pydantic schemas package for request/response validation."""

from .search import SearchQueueStatus
from .user import (
    UserCreate,
    UserResponse,
    UserUpdate,
)

__all__ = [
    "SearchQueueStatus",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
]
