"""Users API endpoints.

Every mutation commits the user together with a search queue item and
then indexes the user immediately (see UserIndexer). The response never
depends on the search engine being available.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.search_queue import DocType
from ..models.user import User
from ..schemas.user import UserCreate, UserResponse, UserUpdate
from ..services.user_indexer import UserIndexer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


def get_user_indexer(request: Request) -> UserIndexer:
    """FastAPI dependency: the users indexer registered at startup."""
    return request.app.state.indexer_registry.get(DocType.USER.value)


async def _get_user_or_404(db: AsyncSession, login: str) -> User:
    result = await db.execute(select(User).where(User.login == login))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {login} not found",
        )
    return user


@router.get("/{login}", response_model=UserResponse)
async def get_user(
    login: str,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get a user by login."""
    return await _get_user_or_404(db, login)


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_user(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db),
    user_indexer: UserIndexer = Depends(get_user_indexer),
) -> User:
    """Create a user and index it."""
    user = User(
        login=user_in.login,
        name=user_in.name,
        email=user_in.email,
        active=True,
        scm_accounts=User.encode_scm_accounts(user_in.scm_accounts),
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"User {user_in.login} already exists",
        )

    await user_indexer.commit_and_index(db, user)
    await db.refresh(user)
    logger.info(f"Created user {user.login}")
    return user


@router.patch("/{login}", response_model=UserResponse)
async def update_user(
    login: str,
    user_in: UserUpdate,
    db: AsyncSession = Depends(get_db),
    user_indexer: UserIndexer = Depends(get_user_indexer),
) -> User:
    """Update a user and re-index it."""
    user = await _get_user_or_404(db, login)

    updates = user_in.model_dump(exclude_unset=True)
    if "name" in updates:
        user.name = updates["name"]
    if "email" in updates:
        user.email = updates["email"]
    if "scm_accounts" in updates:
        user.scm_accounts = User.encode_scm_accounts(updates["scm_accounts"])

    await db.flush()
    await user_indexer.commit_and_index(db, user)
    await db.refresh(user)
    return user


@router.post("/{login}/deactivate", response_model=UserResponse)
async def deactivate_user(
    login: str,
    db: AsyncSession = Depends(get_db),
    user_indexer: UserIndexer = Depends(get_user_indexer),
) -> User:
    """Deactivate a user. The search document is updated, not removed."""
    user = await _get_user_or_404(db, login)
    user.active = False
    user.scm_accounts = None

    await db.flush()
    await user_indexer.commit_and_index(db, user)
    await db.refresh(user)
    logger.info(f"Deactivated user {user.login}")
    return user
