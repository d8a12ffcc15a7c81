"""
SQLAlchemy ORM Model - Ingestions (ingestion side)

One row per processing attempt. Rows are append-only: a terminal row
(DONE/FAILED) is never updated, a later attempt for the same document inserts
a new row.

document_id is a plain correlation value, not a foreign key: the documents
table lives in another service's database.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionBase(DeclarativeBase):
    pass


class Ingestion(IngestionBase):
    """
    Outcome of one ingestion attempt.

    Status values:
        PENDING - column default only; the consumer writes terminal rows directly
        DONE    - text extracted (possibly empty)
        FAILED  - file could not be read or parsed (see error_message)

    Several rows may exist per document_id under at-least-once delivery;
    readers pick the latest by (ingested_at DESC, id DESC).
    """

    __tablename__ = "ingestions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'DONE', 'FAILED')",
            name="ingestions_status_check",
        ),
        Index("idx_ingestions_document_latest", "document_id", "ingested_at"),
    )

    # Also used as the attempt id in logs
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    document_id: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str]     = mapped_column(Text, nullable=False)

    # "" is a valid value (document with no text layer); never NULL
    extracted_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="PENDING",
        server_default="PENDING",
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when status='FAILED'",
    )

    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<Ingestion id={self.id} doc={self.document_id} "
            f"status={self.status}>"
        )
