"""
Celery Application Factory

Broker: Redis (redis://) by default; any kombu transport works.
Result backend: Redis (optional — job state lives in the database, not in
Celery results).

Queue topology:
  documents.process  — immediate mode: one task per uploaded/retried document
  documents.poll     — beat-driven polling tick and stale-job reclaim

Tasks carry only ids. File bytes are always loaded from storage inside the
worker.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import after_setup_logger, task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from paperfix.core.config import settings
from paperfix.core.logging import LOG_FORMAT

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

DOCUMENTS_EXCHANGE = Exchange("documents", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "documents.process",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.process",
        durable=True,
    ),
    Queue(
        "documents.poll",
        exchange=DOCUMENTS_EXCHANGE,
        routing_key="documents.poll",
        durable=True,
    ),
)

TASK_ROUTES = {
    "paperfix.workers.tasks.process_document":   {"queue": "documents.process"},
    "paperfix.workers.tasks.poll_pending_jobs":  {"queue": "documents.poll"},
    "paperfix.workers.tasks.reclaim_stale_jobs": {"queue": "documents.poll"},
}

STALE_RECLAIM_INTERVAL_SECONDS = 60


def _beat_schedule() -> dict:
    schedule = {
        "poll-pending-jobs": {
            "task":     "paperfix.workers.tasks.poll_pending_jobs",
            "schedule": settings.worker_poll_interval_seconds,
            "options":  {"queue": "documents.poll", "expires": settings.worker_poll_interval_seconds * 5},
        },
    }
    if settings.stale_job_timeout_seconds > 0:
        schedule["reclaim-stale-jobs"] = {
            "task":     "paperfix.workers.tasks.reclaim_stale_jobs",
            "schedule": STALE_RECLAIM_INTERVAL_SECONDS,
            "options":  {"queue": "documents.poll"},
        }
    return schedule


# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("paperfix")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="documents.process",
        task_default_exchange="documents",
        task_default_routing_key="documents.process",

        # --- Reliability ---
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Timeouts ---
        task_soft_time_limit=300,
        task_time_limit=360,

        # --- Result TTL ---
        result_expires=3600,

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        beat_schedule=_beat_schedule(),

        # --- Worker ---
        worker_max_tasks_per_child=200,
    )

    app.autodiscover_tasks(["paperfix.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals — task lifecycle logging
# ---------------------------------------------------------------------------

@after_setup_logger.connect
def on_setup_logger(logger, **_):
    for handler in logger.handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s doc=%s",
        task_id, task.name, (kwargs or {}).get("document_id", "-"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, (kwargs or {}).get("document_id", "-"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, (kwargs or {}).get("document_id", "-"), exception,
        exc_info=True,
    )
