"""
ARQ Worker Configuration

Dedicated worker running the search recovery sweep as a cron job, for
deployments where the API processes run with SEARCH_RECOVERY_IN_APP=false.
The cron job is unique and the worker runs one job at a time, so two
recovery runs never overlap.

Run with:
    arq searchsync.worker.WorkerSettings
"""

import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from .config import settings
from .database import async_session_maker, engine
from .services.indexer_registry import build_indexer_registry
from .services.recovery_indexer import RecoveryConfig, RecoveryIndexer
from .services.search_client import build_meilisearch_sink, close_meilisearch, init_meilisearch

logger = logging.getLogger(__name__)


# Parse Redis URL into components for ARQ
# Format: redis://host:port/db or redis://:password@host:port/db
def parse_redis_url(url: str) -> RedisSettings:
    """Parse Redis URL into ARQ RedisSettings."""
    from urllib.parse import urlparse

    parsed = urlparse(url)
    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        database=int(parsed.path.lstrip("/") or 0),
    )


# =============================================================================
# Recovery Job
# =============================================================================

async def run_search_recovery(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Run one search recovery pass.

    Returns:
        dict summary of the run (see RecoveryRunResult)
    """
    recovery: RecoveryIndexer = ctx["recovery_indexer"]
    result = await recovery.run_once()
    return result.to_dict()


# =============================================================================
# Startup/Shutdown Hooks
# =============================================================================

async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts.

    An invalid recovery configuration raises here and stops the worker.
    """
    logging.basicConfig(level=settings.log_level)
    logger.info("ARQ search recovery worker starting up...")

    client = init_meilisearch(settings)
    sink = build_meilisearch_sink(client, settings)
    registry = build_indexer_registry(sink, settings)

    ctx["recovery_indexer"] = RecoveryIndexer(
        registry,
        RecoveryConfig.from_settings(settings),
        async_session_maker,
    )


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    logger.info("ARQ search recovery worker shutting down...")

    await close_meilisearch()
    await engine.dispose()


# =============================================================================
# Schedule Building
# =============================================================================

def schedule_for_delay(delay_seconds: int) -> dict[str, set[int]]:
    """
    Translate a delay between runs into arq cron fields.

    Delays that do not divide the minute/hour/day evenly are approximated
    by restarting the step at the top of the period.

    Examples:
        30   -> {"second": {0, 30}}
        300  -> {"minute": {0, 5, ..., 55}, "second": {0}}
        7200 -> {"hour": {0, 2, ..., 22}, "minute": {0}, "second": {0}}
    """
    if delay_seconds < 60:
        return {"second": set(range(0, 60, max(1, delay_seconds)))}
    if delay_seconds < 3600:
        return {"minute": set(range(0, 60, delay_seconds // 60)), "second": {0}}
    return {
        "hour": set(range(0, 24, min(24, delay_seconds // 3600))),
        "minute": {0},
        "second": {0},
    }


def build_recovery_cron():
    """Build the recovery cron job from the recovery settings."""
    config = RecoveryConfig.from_settings(settings)
    return cron(
        run_search_recovery,
        run_at_startup=True,
        unique=True,
        # The run stops itself at the budget, this only guards a hung sink call
        timeout=config.max_recovery_duration_seconds + 60,
        **schedule_for_delay(config.delay_seconds),
    )


# =============================================================================
# Worker Settings
# =============================================================================

class WorkerSettings:
    """ARQ worker configuration."""

    # Redis connection
    redis_settings = parse_redis_url(settings.redis_url)

    # Job functions that can be called via arq.enqueue_job()
    functions = [
        run_search_recovery,
    ]

    # SEARCH_RECOVERY_DELAY_SECONDS sets the cron schedule
    cron_jobs = [
        build_recovery_cron(),
    ]

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # One recovery run at a time
    max_jobs = 1
    keep_result = 3600  # Keep results for 1 hour

    # Health check
    health_check_interval = 30
