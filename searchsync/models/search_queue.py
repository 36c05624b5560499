"""Search queue SQLAlchemy model.

Each row is one pending indexing operation: the entity of type
``doc_type`` identified by ``doc_id`` must be (re-)indexed. Rows are
inserted in the same transaction as the entity mutation and deleted once
the search engine acknowledges the document. Rows are never updated.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, Column, Index, String
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class DocType(str, Enum):
    """Document types known to the indexers.

    The column stores the raw value, so rows written by a newer release
    with an unknown type still load.
    """

    USER = "user"

    @classmethod
    def parse(cls, value: str) -> Optional["DocType"]:
        """Return the matching member, or None for an unknown value."""
        try:
            return cls(value)
        except ValueError:
            return None


class QueueItem(Base):
    """
    Pending indexing operation.

    Attributes:
        id: Unique identifier (UUID), assigned at creation
        doc_type: Indexer type tag (see DocType)
        doc_id: Natural key of the entity (e.g. user login)
        created_at: Epoch milliseconds from the writer's clock
    """

    __tablename__ = "SearchQueue"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    doc_type = Column(
        String(40),
        nullable=False,
    )

    doc_id = Column(
        String(255),
        nullable=False,
    )

    # Epoch millis, only used for recovery windowing
    created_at = Column(
        BigInteger,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_search_queue_created_at", "created_at"),
    )

    @classmethod
    def create(cls, doc_type: str, doc_id: str, now_ms: int) -> "QueueItem":
        """Build an unsaved queue item stamped with ``now_ms``."""
        if isinstance(doc_type, DocType):
            doc_type = doc_type.value
        return cls(id=uuid.uuid4(), doc_type=doc_type, doc_id=doc_id, created_at=now_ms)

    def __repr__(self) -> str:
        """String representation of QueueItem."""
        return (
            f"<QueueItem(id={self.id}, doc_type={self.doc_type}, "
            f"doc_id={self.doc_id}, created_at={self.created_at})>"
        )
