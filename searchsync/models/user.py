"""User SQLAlchemy model, the indexable entity of the users search index."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class User(Base):
    """
    User model.

    Users are deactivated rather than deleted, so the search index keeps a
    document for every login ever created.

    Attributes:
        id: Unique identifier (UUID)
        login: Natural key, unique; also the search document id
        name: Display name
        email: Email address
        active: False once the user is deactivated
        scm_accounts: Newline-separated SCM account identifiers
        created_at: Timestamp when user was created
        updated_at: Timestamp when user was last updated
    """

    __tablename__ = "Users"

    # Primary key - UUID
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    login = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Profile fields
    name = Column(
        String(200),
        nullable=True,
    )
    email = Column(
        String(255),
        nullable=True,
    )
    active = Column(
        Boolean,
        nullable=False,
        default=True,
    )
    scm_accounts = Column(
        Text,
        nullable=True,
    )

    # Timestamps
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    @staticmethod
    def encode_scm_accounts(accounts: list[str] | None) -> str | None:
        """Join SCM accounts into the stored newline-separated form."""
        if not accounts:
            return None
        cleaned = [a.strip() for a in accounts if a and a.strip()]
        return "\n".join(cleaned) if cleaned else None

    @staticmethod
    def decode_scm_accounts(value: str | None) -> list[str]:
        """Split the stored SCM accounts into a list."""
        if not value:
            return []
        return [a for a in value.split("\n") if a]

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, login={self.login})>"
