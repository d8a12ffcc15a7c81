"""
Celery Tasks - Ingestion Consumer entry point

Task: document_uploaded(payload)
  Receives the DocumentUploaded message body and runs IngestionConsumer.handle.
  Maps each outcome onto a broker decision:

    success            -> return summary, message acked
    MalformedEvent     -> Reject(requeue=False): poison message, dropped or dead-lettered
    PersistenceError   -> retry with exponential backoff capped at
                          INGEST_RETRY_MAX_BACKOFF_SECONDS, up to
                          INGEST_PERSISTENCE_MAX_RETRIES, then the message is
                          rejected without requeue. The original is acked only
                          once its retry is published.
    FileAccessError /
    ExtractionError /
    soft time limit    -> FAILED attempt recorded where the consumer got that far;
                          retry with exponential backoff up to INGEST_MAX_RETRIES,
                          then the error is raised and the message rejected
                          without requeue. The last FAILED record stays terminal.
                          Re-ingesting after that requires a new upload.
    anything else      -> logged and raised; the message is rejected without
                          requeue (task_acks_on_failure_or_timeout=False).

Every retry is a fresh attempt and writes its own record.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from celery import Task
from celery.exceptions import Reject, SoftTimeLimitExceeded

from docingest.core.config import get_settings
from docingest.core.errors import (
    ExtractionError,
    FileAccessError,
    MalformedEvent,
    PersistenceError,
)
from docingest.workers.celery_app import DOCUMENT_UPLOADED_TASK, celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task on a fresh loop."""
    return asyncio.run(coro)


def build_consumer():
    """
    Wire an IngestionConsumer for one task invocation.
    The engine is unpooled because each invocation runs on its own event loop.
    """
    from docingest.db.session import create_engine, create_session_factory
    from docingest.services.ingestion import IngestionConsumer, IngestionStore

    settings = get_settings()
    if not settings.ingestion_database_url:
        raise RuntimeError("INGESTION_DATABASE_URL is not configured")

    engine = create_engine(settings.ingestion_database_url, pooled=False)
    consumer = IngestionConsumer(
        store=IngestionStore(create_session_factory(engine)),
        extraction_timeout=settings.extraction_timeout_seconds,
        log=logging.getLogger("docingest.consumer"),
    )
    return consumer, engine


async def _handle(payload: Any) -> dict[str, Any]:
    consumer, engine = build_consumer()
    try:
        record = await consumer.handle(payload)
    finally:
        consumer.close()
        await engine.dispose()
    return {
        "status":       record.status.value,
        "document_id":  record.document_id,
        "ingestion_id": str(record.id),
    }


def retry_countdown(retries: int, base_seconds: int, cap_seconds: int | None = None) -> int:
    """Exponential backoff: base, 2*base, 4*base, ... optionally capped."""
    countdown = base_seconds * (2 ** retries)
    if cap_seconds is not None:
        countdown = min(countdown, cap_seconds)
    return countdown


# ---------------------------------------------------------------------------
# Main consumer task
# ---------------------------------------------------------------------------

@celery_app.task(
    name=DOCUMENT_UPLOADED_TASK,
    bind=True,
    acks_late=True,
    reject_on_worker_lost=True,
)
def document_uploaded(self: Task, payload: Any) -> dict[str, Any]:
    settings = get_settings()
    retries = self.request.retries or 0
    try:
        return run_async(_handle(payload))

    except MalformedEvent as exc:
        logger.error("Poison message discarded | task_id=%s error=%s", self.request.id, exc)
        raise Reject(str(exc), requeue=False)

    except PersistenceError as exc:
        countdown = retry_countdown(
            retries,
            settings.ingest_retry_backoff_seconds,
            settings.ingest_retry_max_backoff_seconds,
        )
        logger.error(
            "Ingestion outcome not stored | task_id=%s retries=%d/%d next_in=%ds error=%s",
            self.request.id, retries, settings.ingest_persistence_max_retries, countdown, exc,
        )
        raise self.retry(
            exc=exc, countdown=countdown, max_retries=settings.ingest_persistence_max_retries
        )

    except (FileAccessError, ExtractionError, SoftTimeLimitExceeded) as exc:
        if isinstance(exc, SoftTimeLimitExceeded):
            exc = ExtractionError("Task soft time limit exceeded")
        countdown = retry_countdown(retries, settings.ingest_retry_backoff_seconds)
        logger.warning(
            "Ingestion attempt failed | task_id=%s retries=%d/%d next_in=%ds error=%s",
            self.request.id, retries, settings.ingest_max_retries, countdown, exc,
        )
        raise self.retry(exc=exc, countdown=countdown, max_retries=settings.ingest_max_retries)

    except Exception:
        logger.exception("Ingestion task crashed | task_id=%s", self.request.id)
        raise
