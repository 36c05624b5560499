"""Meilisearch client management and the bulk write sink.

Provides:
- Meilisearch client management (init, get client, close)
- Index creation and settings for the users index
- The sink protocol consumed by the bulk indexer, and its Meilisearch
  implementation reporting per-document outcomes
- Health check
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol

from meilisearch_python_sdk import AsyncClient
from meilisearch_python_sdk.errors import MeilisearchApiError

from ..config import Settings

logger = logging.getLogger(__name__)

# Meilisearch document ids: alphanumeric, hyphen and underscore, max 511 bytes
DOCUMENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_DOCUMENT_ID_BYTES = 511

# Users index settings (configure BEFORE adding documents)
USER_INDEX_SETTINGS = {
    "searchableAttributes": [
        "login",
        "name",
        "email",
        "scm_accounts",
    ],
    "filterableAttributes": [
        "active",
    ],
    "sortableAttributes": [
        "login",
        "updated_at",
    ],
}


# ---- Sink Protocol ----

@dataclass(frozen=True)
class BulkItemResult:
    """Outcome of one document in a bulk write."""

    doc_id: str
    failed: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class BulkResponse:
    """Per-document outcomes of one bulk write."""

    items: list[BulkItemResult] = field(default_factory=list)

    @property
    def successes(self) -> list[BulkItemResult]:
        return [item for item in self.items if not item.failed]

    @property
    def failures(self) -> list[BulkItemResult]:
        return [item for item in self.items if item.failed]

    @property
    def has_failures(self) -> bool:
        return any(item.failed for item in self.items)


class SearchSink(Protocol):
    """Bulk write endpoint of the search engine.

    ``bulk_upsert`` returns one outcome per document, or raises when the
    whole batch failed (engine unreachable, timeout, rejected request).
    """

    async def bulk_upsert(self, index_name: str, documents: list[dict]) -> BulkResponse:
        ...


def validate_document_id(doc_id) -> Optional[str]:
    """Return an error message if ``doc_id`` is not a valid Meilisearch id."""
    if doc_id is None:
        return "missing document id"
    if not isinstance(doc_id, str):
        doc_id = str(doc_id)
    if not doc_id:
        return "empty document id"
    if len(doc_id.encode("utf-8")) > MAX_DOCUMENT_ID_BYTES:
        return f"document id longer than {MAX_DOCUMENT_ID_BYTES} bytes"
    if not DOCUMENT_ID_RE.match(doc_id):
        return "document id may only contain alphanumeric characters, '-' and '_'"
    return None


class MeilisearchSink:
    """
    SearchSink backed by a Meilisearch AsyncClient.

    Meilisearch processes a document batch as a single task, so outcomes
    are per task: every document of a succeeded task is acknowledged, every
    document of a failed task is reported failed. Documents with an invalid
    id would fail the whole task and are reported failed up front instead.
    """

    def __init__(
        self,
        client: AsyncClient,
        task_timeout_ms: int = 30000,
        index_settings: Optional[dict[str, dict]] = None,
    ) -> None:
        self._client = client
        self._task_timeout_ms = task_timeout_ms
        self._index_settings = index_settings or {}
        self._ready_indexes: set[str] = set()

    async def prepare(self, index_name: str) -> None:
        """Create and configure ``index_name`` once per sink.

        Retried on the next bulk write if Meilisearch was unavailable,
        so a transient outage at startup does not leave the index
        without its settings.
        """
        if index_name in self._ready_indexes:
            return
        index_settings = self._index_settings.get(index_name)
        if index_settings is not None:
            await ensure_index(self._client, index_name, index_settings)
        self._ready_indexes.add(index_name)

    async def bulk_upsert(self, index_name: str, documents: list[dict]) -> BulkResponse:
        items: list[BulkItemResult] = []
        valid: list[dict] = []

        for doc in documents:
            error = validate_document_id(doc.get("id"))
            if error:
                items.append(BulkItemResult(doc_id=str(doc.get("id")), failed=True, error=error))
            else:
                valid.append(doc)

        if not valid:
            return BulkResponse(items=items)

        await self.prepare(index_name)
        index = self._client.index(index_name)
        task_info = await index.update_documents(valid, primary_key="id")
        task = await self._client.wait_for_task(
            task_info.task_uid, timeout_in_ms=self._task_timeout_ms
        )

        if task.status == "succeeded":
            items.extend(BulkItemResult(doc_id=doc["id"], failed=False) for doc in valid)
        else:
            error = _task_error_message(task)
            logger.warning(
                "Meilisearch task %s on index %s ended with status %s: %s",
                task_info.task_uid, index_name, task.status, error,
            )
            items.extend(
                BulkItemResult(doc_id=doc["id"], failed=True, error=error) for doc in valid
            )

        return BulkResponse(items=items)


def _task_error_message(task) -> str:
    error = getattr(task, "error", None)
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or str(error)
    if error:
        return str(error)
    return f"task status {task.status}"


# ---- Client Management ----

_meili_client: AsyncClient | None = None


def init_meilisearch(settings: Settings) -> AsyncClient:
    """Create the Meilisearch client. Called during app lifespan / worker startup.

    No request is sent here; index setup happens in ``MeilisearchSink.prepare``.
    """
    global _meili_client

    if not settings.meilisearch_api_key:
        logger.warning(
            "meilisearch_api_key is empty -- Meilisearch is unauthenticated. "
            "Set MEILISEARCH_API_KEY in production."
        )

    _meili_client = AsyncClient(
        url=settings.meilisearch_url,
        api_key=settings.meilisearch_api_key or None,
        timeout=settings.meilisearch_timeout,
    )
    return _meili_client


def build_meilisearch_sink(client: AsyncClient, settings: Settings) -> MeilisearchSink:
    """Sink for all indexes managed by this service."""
    return MeilisearchSink(
        client,
        task_timeout_ms=settings.meilisearch_task_timeout_ms,
        index_settings={settings.meilisearch_user_index: USER_INDEX_SETTINGS},
    )


async def ensure_index(client: AsyncClient, index_name: str, index_settings: dict) -> None:
    """Create the index if missing and apply its settings."""
    try:
        index = await client.get_index(index_name)
    except MeilisearchApiError:
        index = await client.create_index(index_name, primary_key="id")

    # Wait for each settings task before documents are added
    task_info = await index.update_searchable_attributes(
        index_settings["searchableAttributes"]
    )
    await client.wait_for_task(task_info.task_uid)

    task_info = await index.update_filterable_attributes(
        index_settings["filterableAttributes"]
    )
    await client.wait_for_task(task_info.task_uid)

    task_info = await index.update_sortable_attributes(
        index_settings["sortableAttributes"]
    )
    await client.wait_for_task(task_info.task_uid)


def get_meili_client() -> AsyncClient:
    """Get the Meilisearch client instance."""
    if _meili_client is None:
        raise RuntimeError("Meilisearch not initialized")
    return _meili_client


async def close_meilisearch() -> None:
    """Close the Meilisearch client, if any."""
    global _meili_client

    if _meili_client is not None:
        await _meili_client.aclose()
        _meili_client = None
        logger.info("Meilisearch client closed")


# ---- Health Check ----

async def check_search_health(index_name: str) -> dict:
    """Check Meilisearch availability and return stats.

    Returns only status and document count -- no error details exposed to clients.
    """
    try:
        client = get_meili_client()
        await client.health()
        stats = await client.index(index_name).get_stats()
        return {
            "status": "healthy",
            "documents_indexed": stats.number_of_documents,
        }
    except Exception as e:
        logger.warning("Meilisearch health check failed: %s", e)
        return {
            "status": "degraded",
        }
