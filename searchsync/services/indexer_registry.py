"""Registry of resilient indexers, keyed by queue doc type."""

import logging
from typing import Collection, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.search_queue import QueueItem
from .bulk_indexer import IndexingResult

logger = logging.getLogger(__name__)


class ResilientIndexer(Protocol):
    """Indexer for one entity type, driven by search queue items."""

    doc_type: str

    async def index(self, db: AsyncSession, items: Collection[QueueItem]) -> IndexingResult:
        """Index the entities referenced by ``items`` and clean up their queue rows."""
        ...

    async def index_on_startup(self, db: AsyncSession) -> IndexingResult:
        """Index every entity of this type, without queue interaction."""
        ...


class IndexerRegistry:
    """Maps a doc type tag to the indexer that processes it."""

    def __init__(self, indexers: Optional[list[ResilientIndexer]] = None) -> None:
        self._indexers: dict[str, ResilientIndexer] = {}
        for indexer in indexers or []:
            self.register(indexer)

    def register(self, indexer: ResilientIndexer) -> None:
        doc_type = str(getattr(indexer.doc_type, "value", indexer.doc_type))
        if doc_type in self._indexers:
            raise ValueError(f"An indexer is already registered for doc type {doc_type!r}")
        self._indexers[doc_type] = indexer
        logger.debug("Registered indexer %s for doc type %s", type(indexer).__name__, doc_type)

    def get(self, doc_type: str) -> Optional[ResilientIndexer]:
        """Return the indexer for ``doc_type``, or None if unsupported."""
        return self._indexers.get(doc_type)

    def doc_types(self) -> list[str]:
        return sorted(self._indexers)

    def __contains__(self, doc_type: str) -> bool:
        return doc_type in self._indexers

    def __len__(self) -> int:
        return len(self._indexers)


def build_indexer_registry(sink, settings) -> IndexerRegistry:
    """Registry with every indexer of this service, writing to ``sink``."""
    from .user_indexer import UserIndexer

    return IndexerRegistry([
        UserIndexer(sink, index_name=settings.meilisearch_user_index),
    ])
