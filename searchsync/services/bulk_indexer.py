"""Bulk indexer: batches document writes to the search sink.

A session is ``start()`` -> ``add()`` * n -> ``stop()``. Documents are
buffered and flushed when the buffer reaches the size's document count or
byte threshold, and once more on ``stop()``.

When the session was started with pending queue items, each flush result
is reconciled against them: every acknowledged (not failed) document id
deletes the matching queue items, and that deletion is committed right
away so progress survives a later failure in the same session. Failed
documents and failed batches leave their queue items for the recovery
loop. Sink errors never reach the caller.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.search_queue import QueueItem
from .queue_store import delete_queue_items
from .search_client import BulkItemResult, BulkResponse, SearchSink

logger = logging.getLogger(__name__)


class BulkSize(Enum):
    """Flush thresholds as (max documents, max bytes)."""

    REGULAR = (1_000, 5 * 1024 * 1024)
    LARGE = (5_000, 20 * 1024 * 1024)

    @property
    def max_documents(self) -> int:
        return self.value[0]

    @property
    def max_bytes(self) -> int:
        return self.value[1]


@dataclass
class IndexingResult:
    """Totals of one bulk session."""

    total: int = 0
    successes: int = 0
    failures: int = 0
    batches: int = 0
    failed_batches: int = 0

    @property
    def is_success(self) -> bool:
        return self.failures == 0

    def add(self, other: "IndexingResult") -> "IndexingResult":
        """Accumulate ``other`` into this result and return self."""
        self.total += other.total
        self.successes += other.successes
        self.failures += other.failures
        self.batches += other.batches
        self.failed_batches += other.failed_batches
        return self


class BulkIndexer:
    """
    Bulk writer for one search index.

    Args:
        sink: Search engine bulk endpoint
        index_name: Target index
        db: Session used to delete acknowledged queue items. Required
            when the session is started with pending items.
        size: Flush thresholds
        on_result: Optional callable invoked with each BulkResponse after
            the queue has been reconciled
    """

    def __init__(
        self,
        sink: SearchSink,
        index_name: str,
        db: Optional[AsyncSession] = None,
        size: BulkSize = BulkSize.REGULAR,
        on_result: Optional[Callable[[BulkResponse], None]] = None,
    ) -> None:
        self._sink = sink
        self._index_name = index_name
        self._db = db
        self._size = size
        self._on_result = on_result

        self._buffer: list[dict] = []
        self._buffer_bytes = 0
        self._pending: Optional[dict[str, list[QueueItem]]] = None
        self._result = IndexingResult()
        self._started = False

    @property
    def index_name(self) -> str:
        return self._index_name

    def start(self, pending_items: Optional[Iterable[QueueItem]] = None) -> None:
        """Begin a session.

        Args:
            pending_items: Queue items to delete when their document is
                acknowledged. None for best-effort indexing without queue
                interaction (bootstrap).
        """
        if self._started:
            raise RuntimeError("Bulk indexer session already started")

        self._buffer = []
        self._buffer_bytes = 0
        self._result = IndexingResult()
        self._pending = None

        if pending_items is not None:
            if self._db is None:
                raise ValueError("A database session is required to reconcile pending items")
            self._pending = defaultdict(list)
            for item in pending_items:
                self._pending[item.doc_id].append(item)

        self._started = True

    async def add(self, document: dict) -> None:
        """Buffer one document write, flushing if a threshold is reached."""
        if not self._started:
            raise RuntimeError("Bulk indexer session not started")

        doc_bytes = len(json.dumps(document, default=str).encode("utf-8"))
        if self._buffer and self._buffer_bytes + doc_bytes > self._size.max_bytes:
            await self._flush()

        self._buffer.append(document)
        self._buffer_bytes += doc_bytes

        if len(self._buffer) >= self._size.max_documents:
            await self._flush()

    async def stop(self) -> IndexingResult:
        """Flush remaining documents and end the session."""
        if not self._started:
            raise RuntimeError("Bulk indexer session not started")

        try:
            await self._flush()
        finally:
            self._started = False
            self._pending = None

        result = self._result
        logger.debug(
            "Bulk indexing on %s done: %d documents, %d failures, %d batches",
            self._index_name, result.total, result.failures, result.batches,
        )
        return result

    async def _flush(self) -> None:
        if not self._buffer:
            return

        batch = self._buffer
        self._buffer = []
        self._buffer_bytes = 0

        self._result.batches += 1
        self._result.total += len(batch)

        try:
            response = await self._sink.bulk_upsert(self._index_name, batch)
        except Exception as exc:
            # Queue items stay, the recovery loop retries them
            self._result.failed_batches += 1
            self._result.failures += len(batch)
            logger.warning(
                "Bulk request of %d documents to %s failed: %s",
                len(batch), self._index_name, exc,
            )
            return

        await self._handle_result(response)

    async def _handle_result(self, response: BulkResponse) -> None:
        """Reconcile one flush result against the pending queue items."""
        successes = response.successes
        failures = response.failures
        self._result.successes += len(successes)
        self._result.failures += len(failures)

        if failures:
            logger.warning(
                "%d of %d documents rejected by %s (first: %s: %s)",
                len(failures), len(response.items), self._index_name,
                failures[0].doc_id, failures[0].error,
            )

        if self._pending is not None and successes:
            await self._delete_acknowledged(successes)

        if self._on_result is not None:
            self._on_result(response)

    async def _delete_acknowledged(self, successes: list[BulkItemResult]) -> None:
        to_delete: list[QueueItem] = []
        for item in successes:
            to_delete.extend(self._pending.pop(item.doc_id, []))

        if not to_delete:
            return

        try:
            await delete_queue_items(self._db, to_delete)
            await self._db.commit()
        except Exception as exc:
            # Rows survive, so the documents are simply indexed again later
            await self._db.rollback()
            logger.error(
                "Failed to delete %d acknowledged queue items: %s",
                len(to_delete), exc,
            )
