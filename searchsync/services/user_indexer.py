"""Resilient indexing of users into the users search index.

Commit path:
    1. ``commit_and_index*`` inserts one search queue item per user in the
       caller's transaction and commits it with the user mutation.
    2. It then indexes immediately. Acknowledged documents delete their
       queue items; anything else is left for the recovery loop.

Bootstrap:
    ``index_on_startup`` streams the whole Users table to the index with
    no queue interaction.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Collection, Iterable, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.search_queue import DocType, QueueItem
from ..models.user import User
from .bulk_indexer import BulkIndexer, BulkSize, IndexingResult
from .queue_store import current_time_millis, delete_queue_items, insert_queue_items
from .search_client import SearchSink

logger = logging.getLogger(__name__)

USER_INDEX_NAME = "users"

# Logins per SELECT ... WHERE login IN (...)
LOGIN_CHUNK_SIZE = 500

# Rows per page when scanning the whole table
BOOTSTRAP_PAGE_SIZE = 1000


def _to_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


def build_user_doc(user: User) -> dict:
    """Translate a user row into its search document.

    All keys are always present, even when the value is None, so that a
    document update never keeps a stale field from a previous version.
    """
    return {
        "id": user.login,
        "login": user.login,
        "name": user.name,
        "email": user.email,
        "active": bool(user.active) if user.active is not None else True,
        "scm_accounts": User.decode_scm_accounts(user.scm_accounts),
        "created_at": _to_millis(user.created_at),
        "updated_at": _to_millis(user.updated_at),
    }


class UserIndexer:
    """Indexer for DocType.USER queue items."""

    doc_type = DocType.USER.value

    def __init__(
        self,
        sink: SearchSink,
        index_name: str = USER_INDEX_NAME,
        clock: Callable[[], int] = current_time_millis,
    ) -> None:
        self._sink = sink
        self._index_name = index_name
        self._clock = clock

    @property
    def index_name(self) -> str:
        return self._index_name

    # ---- Bootstrap ----

    async def index_on_startup(self, db: AsyncSession) -> IndexingResult:
        """Index every user, in login order, with large bulk requests."""
        bulk = self._new_bulk_indexer(db, BulkSize.LARGE)
        bulk.start()

        last_login: Optional[str] = None
        while True:
            query = select(User).order_by(User.login).limit(BOOTSTRAP_PAGE_SIZE)
            if last_login is not None:
                query = query.where(User.login > last_login)
            result = await db.execute(query)
            users = result.scalars().all()
            if not users:
                break

            # Deactivated users are updated, never removed from the index
            for user in users:
                await bulk.add(build_user_doc(user))
            last_login = users[-1].login

        result = await bulk.stop()
        logger.info(
            "Users bootstrap indexing done: %d documents, %d failures",
            result.total, result.failures,
        )
        return result

    # ---- Commit path ----

    async def commit_and_index(
        self,
        db: AsyncSession,
        users: Union[User, Iterable[User]],
    ) -> list[QueueItem]:
        """Commit the caller's transaction along with queue items for ``users``, then index them."""
        if isinstance(users, User):
            users = [users]
        return await self.commit_and_index_by_logins(db, [user.login for user in users])

    async def commit_and_index_by_logins(
        self,
        db: AsyncSession,
        logins: Iterable[str],
    ) -> list[QueueItem]:
        """
        Enqueue, commit, then index immediately.

        The commit includes whatever the caller changed in ``db``. Indexing
        errors are logged and never raised: the queue items are durable and
        the recovery loop picks them up.

        Returns:
            list[QueueItem]: The committed queue items
        """
        now = self._clock()
        items = [QueueItem.create(self.doc_type, login, now) for login in logins]

        await insert_queue_items(db, items)
        await db.commit()

        await self._post_commit(db, items)
        return items

    async def _post_commit(self, db: AsyncSession, items: list[QueueItem]) -> None:
        try:
            await self.index(db, items)
        except Exception as e:
            logger.error(
                f"Immediate indexing of {len(items)} users failed, left for recovery: {e}",
                exc_info=True,
            )
            await db.rollback()

    # ---- Queue driven indexing ----

    async def index(self, db: AsyncSession, items: Collection[QueueItem]) -> IndexingResult:
        """
        Index the users referenced by ``items``, reading their current state.

        Queue items of acknowledged documents are deleted. Items whose user
        no longer exists have nothing left to index and are deleted as well.
        """
        if not items:
            return IndexingResult()

        for item in items:
            if item.id is None:
                raise ValueError(f"BUG - {item!r} has not been persisted before indexing")

        logins = sorted({item.doc_id for item in items})
        users = await self._select_users_by_logins(db, logins)
        found = {user.login for user in users}

        stale = [item for item in items if item.doc_id not in found]
        if stale:
            await self._delete_stale(db, stale)

        pending = [item for item in items if item.doc_id in found]
        if not pending:
            return IndexingResult()

        bulk = self._new_bulk_indexer(db, BulkSize.REGULAR)
        bulk.start(pending)
        for user in users:
            await bulk.add(build_user_doc(user))
        return await bulk.stop()

    async def _select_users_by_logins(self, db: AsyncSession, logins: list[str]) -> list[User]:
        users: list[User] = []
        for start in range(0, len(logins), LOGIN_CHUNK_SIZE):
            chunk = logins[start:start + LOGIN_CHUNK_SIZE]
            # Refresh rows already in the identity map, a queue item means a newer state
            result = await db.execute(
                select(User)
                .where(User.login.in_(chunk))
                .order_by(User.login)
                .execution_options(populate_existing=True)
            )
            users.extend(result.scalars().all())
        return users

    async def _delete_stale(self, db: AsyncSession, stale: list[QueueItem]) -> None:
        logger.debug("Dropping %d queue items of users that no longer exist", len(stale))
        try:
            await delete_queue_items(db, stale)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to delete {len(stale)} stale user queue items: {e}")

    def _new_bulk_indexer(self, db: AsyncSession, size: BulkSize) -> BulkIndexer:
        return BulkIndexer(self._sink, self._index_name, db=db, size=size)
