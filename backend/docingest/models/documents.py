"""
SQLAlchemy ORM Model - Documents (upload side)

Owned exclusively by the upload service. The ingestion service never reads or
writes this table; it only learns about documents through broker events.

Uses its own DeclarativeBase so the documents metadata can be created in a
different database from the ingestions metadata (see models/ingestions.py).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Index, Text, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentsBase(DeclarativeBase):
    pass


class Document(DocumentsBase):
    """
    One uploaded file.

    status only ever takes the value 'uploaded': the upload side does not
    track ingestion outcome (that lives in the ingestion service and is read
    through the Status Query).
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint("status IN ('uploaded')", name="documents_status_check"),
        Index("idx_documents_user_id", "user_id"),
    )

    # Assigned once on creation, never changed
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(Text, nullable=False)

    file_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Locator resolvable by the File Accessor (path or file:// URL)",
    )

    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="uploaded",
        server_default="uploaded",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id} user={self.user_id} status={self.status}>"
