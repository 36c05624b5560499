"""
Background Search Recovery Service

Re-drives search queue items that the commit path did not confirm.
Each run selects the items created in the window
(now - max_age, now - min_age], dispatches them by doc type to the
registered indexers, and re-selects until the window is drained or the
run exceeds its time budget.

Uses the same pattern as the archive service - a simple asyncio loop,
one run at a time.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..models.search_queue import QueueItem
from .indexer_registry import IndexerRegistry
from .queue_store import current_time_millis, select_for_recovery

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 5 * 60
DEFAULT_MIN_AGE_SECONDS = 5 * 60
DEFAULT_MAX_AGE_SECONDS = 60 * 60
DEFAULT_MAX_RECOVERY_DURATION_SECONDS = 2 * 60


class RecoveryConfigurationError(ValueError):
    """Invalid recovery settings. Fatal at startup."""


def _positive_or_default(name: str, value: Optional[int], default: int) -> int:
    if value is None or value <= 0:
        value = default
    logger.debug("Search recovery - %s=%s", name, value)
    return value


@dataclass(frozen=True)
class RecoveryConfig:
    """Recovery timings, in seconds."""

    delay_seconds: int = DEFAULT_DELAY_SECONDS
    min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS
    max_recovery_duration_seconds: int = DEFAULT_MAX_RECOVERY_DURATION_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings) -> "RecoveryConfig":
        """Read recovery settings; values <= 0 fall back to the defaults."""
        return cls(
            delay_seconds=_positive_or_default(
                "search_recovery_delay_seconds",
                settings.search_recovery_delay_seconds,
                DEFAULT_DELAY_SECONDS,
            ),
            min_age_seconds=_positive_or_default(
                "search_recovery_min_age_seconds",
                settings.search_recovery_min_age_seconds,
                DEFAULT_MIN_AGE_SECONDS,
            ),
            max_age_seconds=_positive_or_default(
                "search_recovery_max_age_seconds",
                settings.search_recovery_max_age_seconds,
                DEFAULT_MAX_AGE_SECONDS,
            ),
            max_recovery_duration_seconds=_positive_or_default(
                "search_recovery_max_duration_seconds",
                settings.search_recovery_max_duration_seconds,
                DEFAULT_MAX_RECOVERY_DURATION_SECONDS,
            ),
        )

    def validate(self) -> None:
        """Raise RecoveryConfigurationError unless the settings are usable."""
        for name in (
            "delay_seconds",
            "min_age_seconds",
            "max_age_seconds",
            "max_recovery_duration_seconds",
        ):
            if getattr(self, name) <= 0:
                raise RecoveryConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        if self.min_age_seconds >= self.max_age_seconds:
            raise RecoveryConfigurationError(
                f"search_recovery_min_age_seconds ({self.min_age_seconds}) must be lower than "
                f"search_recovery_max_age_seconds ({self.max_age_seconds})"
            )


@dataclass
class RecoveryRunResult:
    """Summary of one recovery run."""

    started_at: int
    iterations: int = 0
    items_seen: int = 0
    items_by_type: dict[str, int] = field(default_factory=dict)
    unsupported: dict[str, int] = field(default_factory=dict)
    timed_out: bool = False
    failed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class RecoveryIndexer:
    """
    Periodic sweep of the search queue.

    Args:
        registry: Indexers by doc type
        config: Recovery timings, validated here
        session_maker: Factory for the session of each run
        clock: Epoch-millis clock used for the window and the time budget
    """

    def __init__(
        self,
        registry: IndexerRegistry,
        config: RecoveryConfig,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Callable[[], int] = current_time_millis,
    ) -> None:
        config.validate()
        self._registry = registry
        self._config = config
        self._session_maker = session_maker
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._run_lock = asyncio.Lock()
        self._last_result: Optional[RecoveryRunResult] = None

    @property
    def config(self) -> RecoveryConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        """Check if the periodic loop is running."""
        return self._running

    @property
    def last_result(self) -> Optional[RecoveryRunResult]:
        return self._last_result

    async def start(self) -> None:
        """Start the background recovery loop (first run immediately)."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._recovery_loop())
        logger.info(
            "Search recovery started (every %ss, window %ss-%ss, budget %ss)",
            self._config.delay_seconds,
            self._config.min_age_seconds,
            self._config.max_age_seconds,
            self._config.max_recovery_duration_seconds,
        )

    async def stop(self) -> None:
        """Stop the recovery loop. Deletions already committed stay committed."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Search recovery stopped")

    async def _recovery_loop(self) -> None:
        """Run at a fixed rate until stopped."""
        loop = asyncio.get_running_loop()
        while self._running:
            next_run_at = loop.time() + self._config.delay_seconds
            await self.run_once()

            try:
                await asyncio.sleep(max(0.0, next_run_at - loop.time()))
            except asyncio.CancelledError:
                break

    async def run_once(self) -> RecoveryRunResult:
        """Run one recovery pass now. Never overlaps another run, never raises."""
        async with self._run_lock:
            result = await self._recover()
        self._last_result = result
        return result

    async def _recover(self) -> RecoveryRunResult:
        started_at = self._clock()
        before = started_at - self._config.min_age_seconds * 1000
        after = started_at - self._config.max_age_seconds * 1000
        deadline = started_at + self._config.max_recovery_duration_seconds * 1000

        result = RecoveryRunResult(started_at=started_at)

        try:
            async with self._session_maker() as db:
                items = await select_for_recovery(db, before, after)
                while items:
                    if self._clock() > deadline:
                        logger.warning(
                            "Search recovery - timeout for recovery reached. Documents will be "
                            "indexed at next run (see setting search_recovery_max_duration_seconds)"
                        )
                        result.timed_out = True
                        break

                    result.iterations += 1
                    result.items_seen += len(items)
                    if not await self._dispatch(db, items, result):
                        # Only unsupported types left, the same page would come back
                        break

                    items = await select_for_recovery(db, before, after)
        except Exception as e:
            result.failed = True
            logger.error(f"Search recovery - fail to recover documents: {e}", exc_info=True)

        if result.items_seen:
            logger.info(
                "Search recovery - run done: %d items seen in %d iterations%s",
                result.items_seen,
                result.iterations,
                " (timed out)" if result.timed_out else "",
            )
        return result

    async def _dispatch(
        self,
        db: AsyncSession,
        items: list[QueueItem],
        result: RecoveryRunResult,
    ) -> bool:
        """Hand items to their indexers. Returns False if no item had one."""
        by_type: dict[str, list[QueueItem]] = {}
        for item in items:
            by_type.setdefault(item.doc_type, []).append(item)

        handled = False
        processed: Counter = Counter(result.items_by_type)
        unsupported: Counter = Counter(result.unsupported)

        for doc_type, type_items in by_type.items():
            indexer = self._registry.get(doc_type)
            if indexer is None:
                logger.error(
                    "Search recovery - ignore %d documents with unsupported type %s",
                    len(type_items), doc_type,
                )
                unsupported[doc_type] += len(type_items)
                continue

            logger.debug("Search recovery - processing %d %s", len(type_items), doc_type)
            await indexer.index(db, type_items)
            processed[doc_type] += len(type_items)
            handled = True

        result.items_by_type = dict(processed)
        result.unsupported = dict(unsupported)
        return handled
