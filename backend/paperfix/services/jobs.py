"""
Job Store — persisted processing status per document.

State machine (processing_jobs.status):

    PENDING ──claim()──► PROCESSING ──► DONE      (persistence transaction)
                              │
                              └──────► FAILED     (mark_failed)
    FAILED  ──retry──► PENDING                    (RetryController)
    PROCESSING (stale) ──reclaim_stale()──► PENDING

Every transition is a single conditional UPDATE whose WHERE clause names
the expected current status; the affected row count says whether the
transition happened. Nothing here reads a status and then writes it in a
second statement.

Each claim stamps a fresh claim_token. Completion writes that present the
token (mark_failed, ExtractionPersister.apply) only land while that claim
is current, so a worker whose job was reclaimed cannot finish it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperfix.core.dates import utcnow
from paperfix.models.documents import ActionItem, Document, ProcessingJob
from paperfix.schemas.documents import JobStatus

logger = logging.getLogger(__name__)

# Columns written by a successful extraction; cleared together on reset
DERIVED_DOCUMENT_FIELDS: dict[str, None] = {
    "doc_type":       None,
    "sender":         None,
    "amount":         None,
    "deadline":       None,
    "summary":        None,
    "confidence":     None,
    "extracted_text": None,
}


@dataclass(frozen=True)
class JobContext:
    """Everything a worker needs to process one claimed job."""
    job_id:            uuid.UUID
    document_id:       uuid.UUID
    file_ref:          str
    media_type:        str
    language:          str
    original_filename: str


async def reset_document(session: AsyncSession, document_id: uuid.UUID) -> None:
    """Clear derived fields and delete all action items (caller owns the transaction)."""
    await session.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(**DERIVED_DOCUMENT_FIELDS, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(ActionItem)
        .where(ActionItem.document_id == document_id)
        .execution_options(synchronize_session=False)
    )


class JobStore:
    """
    Usage:
        store = JobStore(AsyncSessionLocal)
        if await store.claim(job_id):
            ...
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -----------------------------------------------------------------------
    # Creation (inside the caller's unit of work)
    # -----------------------------------------------------------------------

    @staticmethod
    def create_for_document(session: AsyncSession, document: Document) -> ProcessingJob:
        """Attach a PENDING job to a new document; both flush in the caller's transaction."""
        job = ProcessingJob(
            id=uuid.uuid4(),
            document_id=document.id,
            status=JobStatus.PENDING.value,
        )
        session.add(job)
        return job

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def claim(self, job_id: uuid.UUID) -> bool:
        """
        PENDING → PROCESSING as one conditional write; clears any stale error.

        Returns False when the job is not PENDING any more (another worker
        won the race, or it was never pending). Losing is not an error.
        """
        return await self.acquire(job_id) is not None

    async def acquire(self, job_id: uuid.UUID) -> uuid.UUID | None:
        """
        claim() that also returns the claim token it wrote, or None when lost.

        Completion writes (mark_failed, ExtractionPersister.apply) that pass
        the token only land while this claim is still the current one, so a
        worker whose job was reclaimed and re-claimed cannot overwrite it.
        """
        token = uuid.uuid4()
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ProcessingJob)
                    .where(
                        ProcessingJob.id == job_id,
                        ProcessingJob.status == JobStatus.PENDING.value,
                    )
                    .values(
                        status=JobStatus.PROCESSING.value,
                        error=None,
                        claim_token=token,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
        if result.rowcount != 1:
            logger.debug("Claim lost | job=%s", job_id)
            return None
        logger.info("Claimed | job=%s", job_id)
        return token

    async def mark_failed(
        self,
        job_id:      uuid.UUID,
        message:     str,
        claim_token: uuid.UUID | None = None,
    ) -> bool:
        """PROCESSING → FAILED with the error string shown to the user."""
        conditions = [
            ProcessingJob.id == job_id,
            ProcessingJob.status == JobStatus.PROCESSING.value,
        ]
        if claim_token is not None:
            conditions.append(ProcessingJob.claim_token == claim_token)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ProcessingJob)
                    .where(*conditions)
                    .values(
                        status=JobStatus.FAILED.value,
                        error=message,
                        claim_token=None,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
        if result.rowcount != 1:
            logger.warning("mark_failed skipped, job not PROCESSING under this claim | job=%s", job_id)
            return False
        logger.info("Failed | job=%s error=%s", job_id, message)
        return True

    async def reclaim_stale(self, older_than: timedelta) -> list[uuid.UUID]:
        """
        Reset PROCESSING jobs untouched for longer than `older_than` to PENDING.

        Each job is reset with its own conditional update, so a job that a
        live worker completes in the meantime is left alone. The document is
        cleared exactly like a human retry.
        """
        cutoff = utcnow() - older_than
        reclaimed: list[uuid.UUID] = []

        async with self._session_factory() as session:
            async with session.begin():
                rows = await session.execute(
                    select(ProcessingJob.id, ProcessingJob.document_id).where(
                        ProcessingJob.status == JobStatus.PROCESSING.value,
                        ProcessingJob.updated_at < cutoff,
                    )
                )
                for job_id, document_id in rows.all():
                    result = await session.execute(
                        update(ProcessingJob)
                        .where(
                            ProcessingJob.id == job_id,
                            ProcessingJob.status == JobStatus.PROCESSING.value,
                            ProcessingJob.updated_at < cutoff,
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
                        continue
                    await reset_document(session, document_id)
                    reclaimed.append(job_id)

        for job_id in reclaimed:
            logger.warning("Reclaimed stale job | job=%s cutoff=%s", job_id, cutoff.isoformat())
        return reclaimed

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def next_pending_job_id(self) -> uuid.UUID | None:
        """Oldest PENDING job by creation order (ties broken by id)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProcessingJob.id)
                .where(ProcessingJob.status == JobStatus.PENDING.value)
                .order_by(ProcessingJob.created_at.asc(), ProcessingJob.id.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get(self, job_id: uuid.UUID) -> ProcessingJob | None:
        async with self._session_factory() as session:
            return await session.get(ProcessingJob, job_id)

    async def get_for_document(self, document_id: uuid.UUID) -> ProcessingJob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProcessingJob).where(ProcessingJob.document_id == document_id)
            )
            return result.scalar_one_or_none()

    async def get_context(self, job_id: uuid.UUID) -> JobContext | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    ProcessingJob.id,
                    ProcessingJob.document_id,
                    Document.file_ref,
                    Document.media_type,
                    Document.language,
                    Document.original_filename,
                )
                .join(Document, Document.id == ProcessingJob.document_id)
                .where(ProcessingJob.id == job_id)
            )
            row = result.one_or_none()
        if row is None:
            return None
        return JobContext(
            job_id=row.id,
            document_id=row.document_id,
            file_ref=row.file_ref,
            media_type=row.media_type,
            language=row.language,
            original_filename=row.original_filename,
        )

    async def list_jobs(
        self,
        status:       JobStatus | str | None = None,
        owner_id:     uuid.UUID | None       = None,
        newest_first: bool                   = True,
        limit:        int                    = 50,
    ) -> list[ProcessingJob]:
        """Operational/debug listing; optionally scoped to one owner's documents."""
        stmt = select(ProcessingJob)
        if owner_id is not None:
            stmt = stmt.join(Document, Document.id == ProcessingJob.document_id).where(
                Document.owner_id == owner_id
            )
        if status is not None:
            stmt = stmt.where(ProcessingJob.status == JobStatus(status).value)

        if newest_first:
            stmt = stmt.order_by(ProcessingJob.created_at.desc(), ProcessingJob.id.desc())
        else:
            stmt = stmt.order_by(ProcessingJob.created_at.asc(), ProcessingJob.id.asc())

        async with self._session_factory() as session:
            result = await session.execute(stmt.limit(limit))
            return list(result.scalars().all())


def stale_cutoff_seconds(seconds: int) -> timedelta | None:
    """Configured staleness window, or None when reclaim is disabled."""
    if seconds <= 0:
        return None
    return timedelta(seconds=seconds)


