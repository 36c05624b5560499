"""Shared pytest fixtures for backend tests."""

import os
import sys
from typing import AsyncGenerator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from searchsync.database import Base
from searchsync.models import QueueItem, User
from searchsync.services.search_client import BulkItemResult, BulkResponse


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeSink:
    """
    In-memory search sink.

    Records every bulk request and keeps the latest version of each
    document, like an index upserting by id.

    Attributes:
        documents: Indexed documents by id
        requests: Every bulk request received, in order
        failing_ids: Document ids reported failed
        unavailable: When True, every request raises ConnectionError
        fail_on_calls: 1-based call numbers that raise ConnectionError
        before_request: Optional async callable run before each request
        reverse_results: Report outcomes in reverse request order
    """

    def __init__(self) -> None:
        self.documents: dict[str, dict] = {}
        self.requests: list[tuple[str, list[dict]]] = []
        self.failing_ids: set[str] = set()
        self.unavailable = False
        self.fail_on_calls: set[int] = set()
        self.before_request: Optional[Callable[[str, list[dict]], Awaitable[None]]] = None
        self.reverse_results = False

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def bulk_upsert(self, index_name: str, documents: list[dict]) -> BulkResponse:
        self.requests.append((index_name, [dict(doc) for doc in documents]))

        if self.before_request is not None:
            await self.before_request(index_name, documents)

        if self.unavailable or self.calls in self.fail_on_calls:
            raise ConnectionError("search engine unreachable")

        items = []
        for doc in documents:
            if doc["id"] in self.failing_ids:
                items.append(BulkItemResult(doc_id=doc["id"], failed=True, error="rejected"))
            else:
                self.documents[doc["id"]] = dict(doc)
                items.append(BulkItemResult(doc_id=doc["id"], failed=False))

        if self.reverse_results:
            items.reverse()
        return BulkResponse(items=items)


@pytest_asyncio.fixture
async def engine():
    """Create a test database engine with SQLite."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Clean up
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def sink() -> FakeSink:
    """A fresh in-memory search sink."""
    return FakeSink()


@pytest.fixture
def make_queue_items() -> Callable[..., list[QueueItem]]:
    """Build unsaved queue items: make_queue_items(count, created_at, doc_type, prefix)."""

    def _make(
        count: int,
        created_at: int = 1_000,
        doc_type: str = "user",
        prefix: str = "login",
    ) -> list[QueueItem]:
        return [
            QueueItem.create(doc_type, f"{prefix}{i}", created_at)
            for i in range(count)
        ]

    return _make


@pytest_asyncio.fixture
async def test_users(db_session: AsyncSession) -> list[User]:
    """Create three committed users."""
    users = [
        User(login="ada", name="Ada Lovelace", email="ada@example.com", scm_accounts="ada\nalovelace"),
        User(login="grace", name="Grace Hopper", email="grace@example.com"),
        User(login="linus", name=None, email=None),
    ]
    db_session.add_all(users)
    await db_session.commit()
    return users


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, session_maker, sink: FakeSink) -> AsyncGenerator:
    """HTTP client for the app, wired to the test database and sink."""
    from httpx import ASGITransport, AsyncClient

    from searchsync.database import get_db
    from searchsync.main import app
    from searchsync.services.indexer_registry import IndexerRegistry
    from searchsync.services.recovery_indexer import RecoveryConfig, RecoveryIndexer
    from searchsync.services.user_indexer import UserIndexer

    async def override_get_db():
        yield db_session

    registry = IndexerRegistry([UserIndexer(sink, index_name="users")])
    app.dependency_overrides[get_db] = override_get_db
    app.state.indexer_registry = registry
    app.state.recovery_indexer = RecoveryIndexer(registry, RecoveryConfig(), session_maker)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
