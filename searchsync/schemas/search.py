"""Pydantic schemas for search indexing admin endpoints."""

from typing import Optional

from pydantic import BaseModel


class SearchQueueStatus(BaseModel):
    """Pending search queue items."""

    pending: int
    pending_by_type: dict[str, int]
    oldest_age_seconds: Optional[float] = None
    supported_types: list[str]
