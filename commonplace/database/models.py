"""
commonplace.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- documents          — Every record of every collection, keyed by
                       (collection path, document id).  Records are never
                       physically removed; deletes leave a tombstone.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Commonplace ORM models."""


# JSONB on PostgreSQL, plain JSON (TEXT) everywhere else
DocumentData = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Documents: one row per record in any collection
# ---------------------------------------------------------------------------
class Document(Base):
    """A single record in a collection.

    ``data`` holds the full record including the reserved ``_id``,
    ``_modified`` and (for tombstones) ``_deleted`` fields.  ``modified``
    and ``deleted`` mirror those fields as real columns so ordering and
    filtering happen in SQL.
    """
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(500), primary_key=True)
    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(DocumentData, nullable=False)
    modified: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_documents_collection_modified", "collection", "modified"),
    )

    def __repr__(self) -> str:
        return (
            f"<Document {self.collection}/{self.id} "
            f"modified={self.modified!s} deleted={self.deleted}>"
        )
