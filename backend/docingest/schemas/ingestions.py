"""
Ingestion - Pydantic schemas shared by the store, the consumer and the
Status Query endpoint.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class IngestionStatus(str, Enum):
    """
    Persisted status of one attempt.
    Transitions: (RECEIVED → EXTRACTING, in memory only) → DONE | FAILED
    """
    PENDING = "PENDING"
    DONE    = "DONE"
    FAILED  = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not IngestionStatus.PENDING


class NewIngestion(BaseModel):
    """
    Input to IngestionStore.create. ingested_at is stamped by the store.
    id is generated up front so the consumer can log with it as the attempt id.
    """
    model_config = ConfigDict(frozen=True)

    id:             UUID = Field(default_factory=uuid4)
    document_id:    str
    user_id:        str
    extracted_text: str = ""
    status:         IngestionStatus
    error_message:  str | None = None


class IngestionRecord(BaseModel):
    """One stored attempt, detached from the ORM session."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id:             UUID
    document_id:    str
    user_id:        str
    extracted_text: str
    summary:        str | None = None
    status:         IngestionStatus
    error_message:  str | None = None
    ingested_at:    datetime


class IngestionLookupResponse(BaseModel):
    """
    GET /ingestions/{document_id}

    found=False is a normal answer: ingestion not attempted yet, event never
    arrived, or unknown document. It is never an error and never a default
    record.
    """
    document_id: str
    found:       bool
    ingestion:   IngestionRecord | None = None


class IngestionAttemptsResponse(BaseModel):
    """GET /ingestions/{document_id}/attempts - newest first."""
    document_id: str
    attempts:    list[IngestionRecord] = Field(default_factory=list)
