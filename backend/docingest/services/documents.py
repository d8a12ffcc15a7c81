"""
Document Upload Service (upload side)

Orchestrates the emit-after-commit path:
  1. Resolve the file locator to an absolute path
  2. Insert the document row and COMMIT (DocumentStore.create)
  3. Publish the DocumentUploaded event (EventPublisher.publish)
  4. On publish failure, apply the configured PublishFailurePolicy:
       abort   - delete the committed row again, raise PublishError
       degrade - keep the row, log the missing event, return the document

Step 2 always completes before step 3 starts, so the broker never carries an
event for a document that is not in the store. The opposite inconsistency
(a stored document without an event) is possible only under `degrade`, and is
logged at ERROR with the document id.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docingest.core.config import PublishFailurePolicy
from docingest.core.errors import PersistenceError, PublishError
from docingest.core.logging import bind_logger
from docingest.models.documents import Document
from docingest.schemas.events import DocumentUploadedEvent
from docingest.services.publisher import EventPublisher
from docingest.storage.files import FileAccessor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Document Store
# ---------------------------------------------------------------------------

class DocumentStore:
    """
    Durable record of uploaded documents.
    Every method runs in its own transaction; create() returns only after
    the row is committed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def create(self, user_id: str, file_url: str) -> Document:
        doc = Document(id=uuid.uuid4(), user_id=user_id, file_url=file_url, status="uploaded")
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(doc)
                # committed on leaving begin()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not store document: {exc}") from exc
        return doc

    async def get(self, document_id: uuid.UUID) -> Document | None:
        try:
            async with self._sessions() as session:
                result = await session.execute(select(Document).where(Document.id == document_id))
                return result.scalars().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read document {document_id}: {exc}") from exc

    async def delete(self, document_id: uuid.UUID) -> None:
        try:
            async with self._sessions() as session:
                async with session.begin():
                    await session.execute(delete(Document).where(Document.id == document_id))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not delete document {document_id}: {exc}") from exc


# ---------------------------------------------------------------------------
# Upload orchestrator
# ---------------------------------------------------------------------------

class DocumentService:
    """
    Stateless service object.
    All dependencies are injected (testable, no hidden globals); the publish
    failure policy has no default and must be passed explicitly.
    """

    def __init__(
        self,
        store:     DocumentStore,
        publisher: EventPublisher,
        policy:    PublishFailurePolicy,
        files:     FileAccessor | None = None,
        log:       logging.Logger | None = None,
    ) -> None:
        self._store     = store
        self._publisher = publisher
        self._policy    = PublishFailurePolicy(policy)
        self._files     = files or FileAccessor()
        self._log       = log or logger

    async def upload_document(self, user_id: str, file_url: str) -> Document:
        """Record the document, then announce it on the broker."""
        # Resolved up front: the consumer runs in another working directory
        absolute_path = self._files.resolve(file_url)

        doc = await self._store.create(user_id, file_url)
        log = bind_logger(self._log, doc=doc.id, user=user_id)
        log.info("Document stored | file=%s", absolute_path)

        event = DocumentUploadedEvent(
            document_id=str(doc.id),
            user_id=user_id,
            file_url=str(absolute_path),
        )

        try:
            await self._publisher.publish(event)
        except PublishError:
            if self._policy is PublishFailurePolicy.DEGRADE:
                log.error("Document stored without ingestion event | policy=degrade")
                return doc

            log.warning("Rolling back document after publish failure | policy=abort")
            try:
                await self._store.delete(doc.id)
            except PersistenceError:
                log.exception("Compensating delete failed; document left without event")
            raise

        return doc
