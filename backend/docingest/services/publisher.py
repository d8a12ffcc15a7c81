"""
Event Publisher - upload side of the broker channel

Sends one `document_uploaded` message per committed document. The message is
dispatched by task name (send_task), so the upload service only needs a Celery
client configured with the broker URL; it never imports worker code.

Failure model: the broker call runs with retry disabled and publisher
confirms on, so an unreachable or refusing broker raises here, synchronously,
as PublishError. What to do about it is the caller's decision
(see DocumentService and PublishFailurePolicy).
"""

from __future__ import annotations

import asyncio
import logging
import os

from celery import Celery

from docingest.core.errors import PublishError
from docingest.core.logging import bind_logger
from docingest.schemas.events import DocumentUploadedEvent
from docingest.workers.celery_app import DOCUMENT_UPLOADED_TASK

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Thin abstraction over Celery send_task().
    Injected into DocumentService so it can be mocked in tests.
    """

    def __init__(
        self,
        celery: Celery,
        queue_name: str,
        log: logging.Logger | None = None,
    ) -> None:
        self._celery = celery
        self._queue  = queue_name
        self._log    = log or logger

    async def publish(self, event: DocumentUploadedEvent) -> None:
        """
        Enqueue `event` on the document upload queue.
        Runs the blocking broker call in a thread executor.
        """
        log = bind_logger(self._log, doc=event.document_id, user=event.user_id)

        if not (os.path.isabs(event.file_url) or event.file_url.startswith("file://")):
            raise PublishError(
                f"fileUrl must be absolute before publishing, got {event.file_url!r}"
            )

        payload = event.to_payload()
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None,
                lambda: self._celery.send_task(
                    DOCUMENT_UPLOADED_TASK,
                    args=[payload],
                    queue=self._queue,
                    routing_key=self._queue,
                    retry=False,
                ),
            )
        except Exception as exc:
            log.error("Event publish failed | error=%s", exc)
            raise PublishError(f"Broker rejected {DOCUMENT_UPLOADED_TASK} event: {exc}") from exc

        log.info("Event published | task_id=%s queue=%s", getattr(result, "id", "?"), self._queue)
