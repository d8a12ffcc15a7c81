"""
Composed FastAPI Dependencies

Single wiring point for both HTTP services. Route handlers import from here;
tests replace these callables through app.dependency_overrides.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends

from docingest.core.config import Settings, get_settings
from docingest.db.session import get_documents_sessionmaker, get_ingestion_sessionmaker
from docingest.services.documents import DocumentService, DocumentStore
from docingest.services.ingestion import IngestionStatusQuery, IngestionStore
from docingest.services.publisher import EventPublisher
from docingest.storage.files import LocalUploadStore


# ---------------------------------------------------------------------------
# 1. Upload side
# ---------------------------------------------------------------------------

def get_upload_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> LocalUploadStore:
    return LocalUploadStore(settings.upload_dir)


def get_document_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> DocumentService:
    """
    DocumentService wired to the documents DB and the broker.
    The publish failure policy is validated at startup (see main.py).
    """
    from docingest.workers.celery_app import celery_app

    return DocumentService(
        store=DocumentStore(get_documents_sessionmaker()),
        publisher=EventPublisher(
            celery_app,
            settings.queue_name,
            log=logging.getLogger("docingest.publisher"),
        ),
        policy=settings.upload_publish_failure_policy,
    )


# ---------------------------------------------------------------------------
# 2. Ingestion side
# ---------------------------------------------------------------------------

def get_status_query() -> IngestionStatusQuery:
    return IngestionStatusQuery(IngestionStore(get_ingestion_sessionmaker()))


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

UploadStore     = Annotated[LocalUploadStore,     Depends(get_upload_store)]
Documents       = Annotated[DocumentService,      Depends(get_document_service)]
StatusQuery     = Annotated[IngestionStatusQuery, Depends(get_status_query)]
AppSettings     = Annotated[Settings,             Depends(get_settings)]
