"""
Celery Application Factory - the Broker Channel

One logical queue carries DocumentUploaded events from the upload service to
the ingestion worker:

  exchange "documents" (direct) ──routing key = QUEUE_NAME──► queue QUEUE_NAME

Delivery semantics: at-least-once.
  - task_acks_late: the message is acked only after the task returns, so a
    worker crash mid-attempt leads to redelivery.
  - task_reject_on_worker_lost: a killed worker process requeues its message.
  - task_acks_on_failure_or_timeout=False: a task that ends in an unhandled
    error is rejected without requeue (dead-lettered when QUEUE_DEAD_LETTER_EXCHANGE
    is set) and one killed by the hard time limit is requeued; neither is acked.
  - worker_prefetch_multiplier=1: a worker holds at most one unacked message
    per process.

Durability is a deployment choice (QUEUE_DURABLE). With a transient queue a
broker restart silently drops queued events; nothing in the pipeline detects
that loss.

The producer imports this module only to build a client app and calls
send_task() by name; it never imports the task code in workers/tasks.py.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from docingest.core.config import Settings, get_settings
from docingest.schemas.events import DOCUMENT_UPLOADED

logger = logging.getLogger(__name__)

DOCUMENTS_EXCHANGE = "documents"

# Task name doubles as the message pattern on the wire
DOCUMENT_UPLOADED_TASK = DOCUMENT_UPLOADED


# ---------------------------------------------------------------------------
# Queue topology
# ---------------------------------------------------------------------------

def build_task_queues(settings: Settings) -> tuple[Queue, ...]:
    queue_arguments: dict[str, str] = {}
    if settings.queue_dead_letter_exchange:
        # Reject(requeue=False) routes poison messages here instead of dropping them
        queue_arguments["x-dead-letter-exchange"] = settings.queue_dead_letter_exchange

    exchange = Exchange(DOCUMENTS_EXCHANGE, type="direct", durable=settings.queue_durable)
    return (
        Queue(
            settings.queue_name,
            exchange=exchange,
            routing_key=settings.queue_name,
            durable=settings.queue_durable,
            queue_arguments=queue_arguments or None,
        ),
    )


# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app(settings: Settings | None = None) -> Celery:
    settings = settings or get_settings()
    app = Celery("docingest")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,
        task_ignore_result=True,   # outcomes live in the ingestions table

        # --- Publisher confirms: send_task returns only once the broker has the message ---
        broker_transport_options={"confirm_publish": True},

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=build_task_queues(settings),
        task_routes={
            DOCUMENT_UPLOADED_TASK: {
                "queue":       settings.queue_name,
                "routing_key": settings.queue_name,
            },
        },
        task_default_queue=settings.queue_name,
        task_default_exchange=DOCUMENTS_EXCHANGE,
        task_default_routing_key=settings.queue_name,
        task_default_delivery_mode="persistent" if settings.queue_durable else "transient",

        # --- Reliability ---
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        # A failed or timed-out task is rejected, not acked: a hard time limit
        # requeues it, any other unhandled error dead-letters it.
        task_acks_on_failure_or_timeout=False,
        worker_prefetch_multiplier=1,

        # --- Retries (FAILED attempts; see workers/tasks.py) ---
        task_max_retries=settings.ingest_max_retries,
        task_default_retry_delay=settings.ingest_retry_backoff_seconds,

        # --- Timeouts: hard backstop above the in-task extraction timeout ---
        task_soft_time_limit=int(settings.extraction_timeout_seconds) + 30,
        task_time_limit=int(settings.extraction_timeout_seconds) + 60,

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        # --- Worker ---
        worker_max_tasks_per_child=200,   # recycle workers to bound parser memory
        worker_hijack_root_logger=False,
    )

    app.autodiscover_tasks(["docingest.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals - structured task lifecycle logging
# ---------------------------------------------------------------------------

def _document_id(args) -> str:
    if args and isinstance(args[0], dict):
        return str(args[0].get("documentId", "?"))
    return "?"


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s",
        task_id, task.name, _document_id(args),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, _document_id(args),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, _document_id(args), exception,
    )
