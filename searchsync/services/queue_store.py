"""Search queue storage (the indexing outbox).

Pure storage: insert, select and delete pending indexing operations.
None of these functions commit; the caller owns the transaction.
"""

import logging
import time
from typing import Iterable, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.search_queue import QueueItem

logger = logging.getLogger(__name__)

# Max rows returned by one recovery query, bounds memory and transaction size
RECOVERY_PAGE_SIZE = 10_000

# Max ids per DELETE statement
DELETE_CHUNK_SIZE = 500


def current_time_millis() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def _as_list(items: Union[QueueItem, Iterable[QueueItem]]) -> list[QueueItem]:
    if isinstance(items, QueueItem):
        return [items]
    return list(items)


async def insert_queue_items(
    db: AsyncSession,
    items: Union[QueueItem, Iterable[QueueItem]],
) -> list[QueueItem]:
    """
    Persist queue items and return them with their identity assigned.

    Args:
        db: Database session
        items: One QueueItem or an iterable of them

    Returns:
        list[QueueItem]: The persisted items
    """
    batch = _as_list(items)
    if not batch:
        return []

    db.add_all(batch)
    await db.flush()
    return batch


async def delete_queue_items(
    db: AsyncSession,
    items: Union[QueueItem, Iterable[QueueItem]],
) -> int:
    """
    Delete queue items by identity.

    Items already deleted (e.g. by a concurrent recovery run) are ignored.

    Returns:
        int: Number of rows actually deleted
    """
    ids = [item.id for item in _as_list(items) if item.id is not None]
    if not ids:
        return 0

    deleted = 0
    for start in range(0, len(ids), DELETE_CHUNK_SIZE):
        chunk = ids[start:start + DELETE_CHUNK_SIZE]
        result = await db.execute(
            delete(QueueItem)
            .where(QueueItem.id.in_(chunk))
            .execution_options(synchronize_session=False)
        )
        deleted += result.rowcount or 0
    return deleted


async def select_for_recovery(
    db: AsyncSession,
    before: int,
    after: int,
    limit: int = RECOVERY_PAGE_SIZE,
) -> list[QueueItem]:
    """
    Select queue items with ``after < created_at <= before``.

    Results are ordered by (created_at, id) and capped at ``limit``;
    callers re-invoke with the same bounds to drain a larger backlog.

    Args:
        db: Database session
        before: Inclusive upper bound (epoch millis)
        after: Exclusive lower bound (epoch millis)
        limit: Page size, RECOVERY_PAGE_SIZE by default
    """
    result = await db.execute(
        select(QueueItem)
        .where(
            QueueItem.created_at <= before,
            QueueItem.created_at > after,
        )
        .order_by(QueueItem.created_at, QueueItem.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_queue_items(db: AsyncSession, doc_type: Optional[str] = None) -> int:
    """Count pending queue items, optionally for a single doc type."""
    query = select(func.count(QueueItem.id))
    if doc_type is not None:
        query = query.where(QueueItem.doc_type == doc_type)
    result = await db.execute(query)
    return result.scalar() or 0


async def count_queue_items_by_type(db: AsyncSession) -> dict[str, int]:
    """Count pending queue items grouped by doc type."""
    result = await db.execute(
        select(QueueItem.doc_type, func.count(QueueItem.id))
        .group_by(QueueItem.doc_type)
    )
    return {doc_type: count for doc_type, count in result.all()}


async def oldest_queue_item_created_at(db: AsyncSession) -> Optional[int]:
    """Creation time (epoch millis) of the oldest pending item, None if empty."""
    result = await db.execute(select(func.min(QueueItem.created_at)))
    return result.scalar()
