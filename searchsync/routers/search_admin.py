"""Search indexing admin endpoints.

Queue status, manual recovery run and full reindex.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.search import SearchQueueStatus
from ..services.indexer_registry import IndexerRegistry
from ..services.queue_store import (
    count_queue_items_by_type,
    current_time_millis,
    oldest_queue_item_created_at,
)
from ..services.recovery_indexer import RecoveryIndexer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])


def get_indexer_registry(request: Request) -> IndexerRegistry:
    """FastAPI dependency: indexers registered at startup."""
    return request.app.state.indexer_registry


def get_recovery_indexer(request: Request) -> RecoveryIndexer:
    """FastAPI dependency: the recovery indexer built at startup."""
    return request.app.state.recovery_indexer


@router.get("/queue", response_model=SearchQueueStatus)
async def get_queue_status(
    db: AsyncSession = Depends(get_db),
    registry: IndexerRegistry = Depends(get_indexer_registry),
) -> SearchQueueStatus:
    """Pending search queue items, per doc type, and the age of the oldest."""
    by_type = await count_queue_items_by_type(db)
    oldest = await oldest_queue_item_created_at(db)

    oldest_age = None
    if oldest is not None:
        oldest_age = max(0.0, (current_time_millis() - oldest) / 1000)

    return SearchQueueStatus(
        pending=sum(by_type.values()),
        pending_by_type=by_type,
        oldest_age_seconds=oldest_age,
        supported_types=registry.doc_types(),
    )


@router.post("/recovery/run")
async def run_recovery(
    recovery: RecoveryIndexer = Depends(get_recovery_indexer),
) -> dict:
    """
    Manually trigger one recovery run.

    Waits for a scheduled run in progress to finish first.
    """
    result = await recovery.run_once()
    return result.to_dict()


@router.post("/reindex")
async def reindex_all(
    doc_type: str | None = None,
    db: AsyncSession = Depends(get_db),
    registry: IndexerRegistry = Depends(get_indexer_registry),
) -> dict:
    """Bootstrap reindex of every entity, or of one doc type."""
    doc_types = registry.doc_types() if doc_type is None else [doc_type]

    results = {}
    for name in doc_types:
        indexer = registry.get(name)
        if indexer is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported doc type: {name}",
            )
        result = await indexer.index_on_startup(db)
        results[name] = {
            "documents": result.total,
            "failures": result.failures,
        }
        logger.info("Reindex of %s: %d documents, %d failures", name, result.total, result.failures)

    return {"status": "reindex_completed", "results": results}
