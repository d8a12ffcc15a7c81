"""
Document Ingestion Service (ingestion side)

Consumes DocumentUploaded events and records one IngestionRecord per attempt:

  RECEIVED ──parse──► EXTRACTING ──read + extract──► DONE
      │                    │
      │                    └── FileAccessError / ExtractionError / timeout ──► FAILED
      └── MalformedEvent ──► (nothing written, poison message)

Only the terminal state is persisted; RECEIVED and EXTRACTING exist in memory
for the lifetime of one handle() call.

Rules enforced here:
  - A present-but-empty extraction result is DONE with extracted_text "".
  - A read/extract failure writes FAILED with extracted_text "" and then
    re-raises the original error so the broker layer decides on retries.
  - Records are created, never updated. Redelivery of the same event produces
    another record; readers take the latest (ingested_at DESC, id DESC).
  - If the record cannot be written the PersistenceError propagates and the
    message must not be acknowledged.

Attempts share no mutable state: every handle() call opens its own sessions
and holds no lock across an await.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docingest.core.errors import ExtractionError, FileAccessError, PersistenceError
from docingest.core.logging import bind_logger
from docingest.models.ingestions import Ingestion
from docingest.processing.extractor import PdfTextExtractor, TextExtractor
from docingest.schemas.events import DocumentUploadedEvent
from docingest.schemas.ingestions import IngestionRecord, IngestionStatus, NewIngestion
from docingest.storage.files import FileAccessor

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_TIMEOUT = 60.0
DEFAULT_EXTRACTION_WORKERS = 4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Ingestion Store
# ---------------------------------------------------------------------------

class IngestionStore:
    """
    Append-only store of ingestion attempts.

    create() is safe to call concurrently for the same document_id: there is
    no uniqueness constraint, so concurrent or repeated deliveries each leave
    their own row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def create(self, new: NewIngestion) -> IngestionRecord:
        row = Ingestion(
            id=new.id,
            document_id=new.document_id,
            user_id=new.user_id,
            extracted_text=new.extracted_text,
            summary=None,
            status=new.status.value,
            error_message=new.error_message,
            ingested_at=_utcnow(),
        )
        try:
            async with self._sessions() as session:
                async with session.begin():
                    session.add(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not store ingestion for document {new.document_id}: {exc}"
            ) from exc
        return IngestionRecord.model_validate(row)

    async def find_by_document_id(self, document_id: str) -> IngestionRecord | None:
        """Latest attempt for the document, or None if there is none."""
        records = await self._select(document_id, limit=1)
        return records[0] if records else None

    async def list_by_document_id(self, document_id: str) -> list[IngestionRecord]:
        """All attempts for the document, newest first."""
        return await self._select(document_id)

    async def _select(self, document_id: str, limit: int | None = None) -> list[IngestionRecord]:
        stmt = (
            select(Ingestion)
            .where(Ingestion.document_id == document_id)
            .order_by(Ingestion.ingested_at.desc(), Ingestion.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [IngestionRecord.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not read ingestions for document {document_id}: {exc}"
            ) from exc


# ---------------------------------------------------------------------------
# Status Query
# ---------------------------------------------------------------------------

class IngestionStatusQuery:
    """Read-only view over the Ingestion Store for external callers."""

    def __init__(self, store: IngestionStore) -> None:
        self._store = store

    async def get_by_document_id(self, document_id: str) -> IngestionRecord | None:
        return await self._store.find_by_document_id(document_id)

    async def list_attempts(self, document_id: str) -> list[IngestionRecord]:
        return await self._store.list_by_document_id(document_id)


# ---------------------------------------------------------------------------
# Ingestion Consumer
# ---------------------------------------------------------------------------

class IngestionConsumer:
    """
    Drives one processing attempt per delivered message.
    All collaborators are injected; a single instance may serve many
    concurrent attempts.

    Extraction runs on a thread pool owned by the consumer. A timed-out
    extractor thread cannot be interrupted, so close() abandons it instead of
    joining it; the caller gets its ExtractionError when the timeout fires.
    """

    def __init__(
        self,
        store:              IngestionStore,
        files:              FileAccessor | None = None,
        extractor:          TextExtractor | None = None,
        extraction_timeout: float = DEFAULT_EXTRACTION_TIMEOUT,
        log:                logging.Logger | None = None,
        executor:           ThreadPoolExecutor | None = None,
    ) -> None:
        self._store     = store
        self._files     = files or FileAccessor()
        self._extractor = extractor or PdfTextExtractor()
        self._timeout   = extraction_timeout
        self._log       = log or logger
        self._executor  = executor or ThreadPoolExecutor(
            max_workers=DEFAULT_EXTRACTION_WORKERS, thread_name_prefix="extract"
        )

    def close(self) -> None:
        """Release the extraction pool without waiting for running extractors."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def handle(self, payload: Mapping[str, Any]) -> IngestionRecord:
        """
        Process one DocumentUploaded message body and return the stored record.

        Raises:
            MalformedEvent   - payload unusable; nothing was written
            FileAccessError  - FAILED record written, original error re-raised
            ExtractionError  - FAILED record written, original error re-raised
            PersistenceError - the outcome could not be written
        """
        event = DocumentUploadedEvent.from_payload(payload)

        attempt = NewIngestion(
            document_id=event.document_id,
            user_id=event.user_id,
            status=IngestionStatus.PENDING,
        )
        log = bind_logger(self._log, doc=event.document_id, attempt=attempt.id)
        log.info("Ingestion received | user=%s file=%s", event.user_id, event.file_url)

        try:
            path = self._files.resolve(event.file_url)
            data = await self._files.read_bytes(path)
            log.debug("Extracting | path=%s bytes=%d", path, len(data))
            text = await self._extract(data)
        except (FileAccessError, ExtractionError) as exc:
            log.error("Ingestion failed | kind=%s error=%s", exc.code, exc)
            await self._store.create(
                attempt.model_copy(update={
                    "status":         IngestionStatus.FAILED,
                    "extracted_text": "",
                    "error_message":  f"{exc.code}: {exc}",
                })
            )
            log.info("Ingestion recorded | status=FAILED")
            raise

        record = await self._store.create(
            attempt.model_copy(update={
                "status":         IngestionStatus.DONE,
                "extracted_text": text,
            })
        )
        log.info("Ingestion recorded | status=DONE chars=%d", len(text))
        return record

    async def _extract(self, data: bytes) -> str:
        """Run the extractor off-loop under the timeout; absent text becomes ""."""
        loop = asyncio.get_running_loop()
        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(self._executor, self._extractor.extract, data),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ExtractionError(f"Extraction timed out after {self._timeout:g}s") from exc
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Extractor failed: {exc}") from exc

        if isinstance(result, Mapping):
            text = result.get("text")
        else:
            text = getattr(result, "text", None)
        return text or ""
