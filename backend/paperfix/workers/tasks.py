"""
Celery Tasks — Document Pipeline Triggers

Task: process_document     immediate mode, published after upload / retry
Task: poll_pending_jobs    beat tick: process the oldest PENDING job
Task: reclaim_stale_jobs   beat: PROCESSING jobs older than the stale
                           timeout go back to PENDING

All three only trigger DocumentPipeline; the pipeline owns every state
transition. None of them retries: a FAILED job waits for a human retry.

Each task runs on a fresh event loop, so it builds its own engine and
disposes it afterwards; pooled asyncpg connections cannot cross loops.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from paperfix.core.config import settings
from paperfix.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


@asynccontextmanager
async def _task_pipeline() -> AsyncIterator[Any]:
    from paperfix.db.session import build_engine, build_session_factory
    from paperfix.services.pipeline import build_pipeline

    engine = build_engine()
    try:
        yield build_pipeline(build_session_factory(engine))
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Immediate mode
# ---------------------------------------------------------------------------

@celery_app.task(
    name="paperfix.workers.tasks.process_document",
    acks_late=True,
    reject_on_worker_lost=True,
    max_retries=0,
)
def process_document(*, document_id: str) -> dict[str, str]:
    return run_async(_process_document_async(uuid.UUID(document_id)))


async def _process_document_async(document_id: uuid.UUID) -> dict[str, str]:
    async with _task_pipeline() as pipeline:
        outcome = await pipeline.process_document(document_id)
    logger.info("process_document | doc=%s outcome=%s", document_id, outcome.value)
    return {"document_id": str(document_id), "outcome": outcome.value}


# ---------------------------------------------------------------------------
# Polling mode
# ---------------------------------------------------------------------------

@celery_app.task(name="paperfix.workers.tasks.poll_pending_jobs", max_retries=0)
def poll_pending_jobs() -> dict[str, str]:
    return run_async(_poll_pending_jobs_async())


async def _poll_pending_jobs_async() -> dict[str, str]:
    async with _task_pipeline() as pipeline:
        outcome = await pipeline.process_next_pending()
    if outcome is None:
        return {"outcome": "IDLE"}
    return {"outcome": outcome.value}


@celery_app.task(name="paperfix.workers.tasks.reclaim_stale_jobs", max_retries=0)
def reclaim_stale_jobs() -> dict[str, int]:
    return run_async(_reclaim_stale_jobs_async())


async def _reclaim_stale_jobs_async() -> dict[str, int]:
    from paperfix.services.jobs import stale_cutoff_seconds

    older_than = stale_cutoff_seconds(settings.stale_job_timeout_seconds)
    if older_than is None:
        return {"reclaimed": 0}
    async with _task_pipeline() as pipeline:
        reclaimed = await pipeline.jobs.reclaim_stale(older_than)
    return {"reclaimed": len(reclaimed)}
