"""Business logic services."""

from .bulk_indexer import (
    BulkIndexer,
    BulkSize,
    IndexingResult,
)
from .indexer_registry import (
    IndexerRegistry,
    ResilientIndexer,
    build_indexer_registry,
)
from .queue_store import (
    RECOVERY_PAGE_SIZE,
    count_queue_items,
    current_time_millis,
    delete_queue_items,
    insert_queue_items,
    select_for_recovery,
)
from .recovery_indexer import (
    RecoveryConfig,
    RecoveryConfigurationError,
    RecoveryIndexer,
    RecoveryRunResult,
)
from .search_client import (
    BulkItemResult,
    BulkResponse,
    MeilisearchSink,
    SearchSink,
)
from .user_indexer import (
    UserIndexer,
    build_user_doc,
)

__all__ = [
    # Bulk indexer
    "BulkIndexer",
    "BulkSize",
    "IndexingResult",
    # Indexer registry
    "IndexerRegistry",
    "ResilientIndexer",
    "build_indexer_registry",
    # Queue store
    "RECOVERY_PAGE_SIZE",
    "count_queue_items",
    "current_time_millis",
    "delete_queue_items",
    "insert_queue_items",
    "select_for_recovery",
    # Recovery
    "RecoveryConfig",
    "RecoveryConfigurationError",
    "RecoveryIndexer",
    "RecoveryRunResult",
    # Search sink
    "BulkItemResult",
    "BulkResponse",
    "MeilisearchSink",
    "SearchSink",
    # User indexer
    "UserIndexer",
    "build_user_doc",
]
