"""FastAPI application entry point."""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from .config import settings
from .database import async_session_maker, check_database_health, engine
from .routers import search_admin_router, users_router
from .services.indexer_registry import build_indexer_registry
from .services.recovery_indexer import RecoveryConfig, RecoveryIndexer
from .services.search_client import (
    build_meilisearch_sink,
    check_search_health,
    close_meilisearch,
    init_meilisearch,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    # Configuration errors raise here and abort startup
    recovery_config = RecoveryConfig.from_settings(settings)
    recovery_config.validate()

    logger.info("Initializing Meilisearch...")
    client = init_meilisearch(settings)
    sink = build_meilisearch_sink(client, settings)
    try:
        await sink.prepare(settings.meilisearch_user_index)
        logger.info("Meilisearch index ready: %s", settings.meilisearch_user_index)
    except Exception as e:
        # Index setup is retried on the first bulk write
        logger.warning(f"Meilisearch unavailable at startup, indexing will be retried: {e}")

    registry = build_indexer_registry(sink, settings)
    recovery_indexer = RecoveryIndexer(registry, recovery_config, async_session_maker)

    app.state.indexer_registry = registry
    app.state.recovery_indexer = recovery_indexer

    if settings.search_recovery_in_app:
        logger.info("Starting search recovery...")
        await recovery_indexer.start()
    else:
        logger.info("Search recovery runs in the arq worker (SEARCH_RECOVERY_IN_APP=false)")

    yield

    # Shutdown
    logger.info("Stopping search recovery...")
    await recovery_indexer.stop()

    await close_meilisearch()
    await engine.dispose()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="searchsync",
    description="Users API with resilient Meilisearch indexing",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """Handle database connection pool exhaustion with 503 Service Unavailable."""
    logger.warning(
        f"Database pool exhausted on {request.method} {request.url}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


# Global exception handler to log errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url}:")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include API routers
app.include_router(users_router)
app.include_router(search_admin_router)


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    recovery_indexer = getattr(request.app.state, "recovery_indexer", None)
    last_run = recovery_indexer.last_result if recovery_indexer else None
    return {
        "status": "healthy",
        "database": await check_database_health(),
        "search": await check_search_health(settings.meilisearch_user_index),
        "recovery": {
            "running": recovery_indexer.is_running if recovery_indexer else False,
            "last_run": last_run.to_dict() if last_run else None,
        },
    }
