"""
Retry Controller — FAILED → PENDING, human-initiated only.

Policy: only FAILED jobs can be retried. PENDING jobs are already queued,
DONE jobs are final, and a PROCESSING job may still belong to a live
worker; stuck PROCESSING jobs are recovered by JobStore.reclaim_stale.

The reset is one transaction:
  conditional UPDATE processing_jobs (status = FAILED) → PENDING, error NULL
  clear the document's derived fields
  delete all action items
A zero-row job update means the precondition failed; nothing is written.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperfix.core.dates import utcnow
from paperfix.core.exceptions import JobNotFound, RetryNotAllowed
from paperfix.models.documents import Document, ProcessingJob
from paperfix.schemas.documents import JobStatus
from paperfix.services.jobs import reset_document

logger = logging.getLogger(__name__)

# Invoked after a successful reset when the caller asks for immediate reprocessing
ReprocessHook = Callable[[uuid.UUID], Awaitable[object]]


@dataclass(frozen=True)
class RetryResult:
    document_id: uuid.UUID
    job_id:      uuid.UUID
    status:      JobStatus
    reprocessed: bool


class RetryController:
    """
    Usage:
        controller = RetryController(AsyncSessionLocal, reprocess=pipeline.process_document)
        await controller.retry(document_id, owner_id=user.user_id, reprocess_now=True)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reprocess:       ReprocessHook | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._reprocess = reprocess

    async def retry(
        self,
        document_id:   uuid.UUID,
        owner_id:      uuid.UUID | None = None,
        reprocess_now: bool             = False,
    ) -> RetryResult:
        """
        Raises:
            JobNotFound: no job exists for the document (or it belongs to
                another owner, which is reported the same way).
            RetryNotAllowed: the job is not FAILED.
        """
        async with self._session_factory() as session:
            async with session.begin():
                stmt = (
                    select(ProcessingJob.id, ProcessingJob.status)
                    .join(Document, Document.id == ProcessingJob.document_id)
                    .where(ProcessingJob.document_id == document_id)
                )
                if owner_id is not None:
                    stmt = stmt.where(Document.owner_id == owner_id)
                row = (await session.execute(stmt)).one_or_none()
                if row is None:
                    raise JobNotFound(document_id)
                job_id, current_status = row

                result = await session.execute(
                    update(ProcessingJob)
                    .where(
                        ProcessingJob.id == job_id,
                        ProcessingJob.status == JobStatus.FAILED.value,
                    )
                    .values(
                        status=JobStatus.PENDING.value,
                        error=None,
                        claim_token=None,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    # status read above may be stale; report what we saw
                    raise RetryNotAllowed(document_id, current_status)

                await reset_document(session, document_id)

        logger.info("Retry | doc=%s job=%s reprocess_now=%s", document_id, job_id, reprocess_now)

        reprocessed = False
        if reprocess_now and self._reprocess is not None:
            try:
                await self._reprocess(document_id)
                reprocessed = True
            except Exception as exc:
                # reset is committed as PENDING; the poller will pick it up
                logger.error("Reprocess trigger failed | doc=%s error=%s", document_id, exc)

        return RetryResult(
            document_id=document_id,
            job_id=job_id,
            status=JobStatus.PENDING,
            reprocessed=reprocessed,
        )
