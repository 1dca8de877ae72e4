"""
Document Pipeline — drives one job from PENDING to DONE or FAILED.

Per-job procedure:

    claim ──lost──► CLAIM_LOST (another worker has it; do nothing)
      │
      ▼
    storage.read → TextExtractor → (empty? placeholder) → StructuredExtractionClient
      │                                                       │
      │  PipelineError / unexpected error ────────────────────┴──► mark_failed → FAILED
      ▼
    ExtractionPersister.apply ──PersistenceError──► PERSISTENCE_ERROR (job stays PROCESSING)
      │
      ▼
    DONE

Trigger modes:
  process_document(document_id)  immediate, right after upload or retry
  process_next_pending()         one polling tick: oldest PENDING job

Nothing here retries automatically; FAILED is terminal until a human retry.
"""

from __future__ import annotations

import logging
import time
import uuid
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperfix.core.exceptions import PersistenceError, PipelineError
from paperfix.llm.extraction import StructuredExtractionClient
from paperfix.llm.prompts import no_text_placeholder
from paperfix.processing.text import TextExtractor
from paperfix.services.jobs import JobStore
from paperfix.services.persistence import ExtractionPersister
from paperfix.storage.base import StorageProvider

logger = logging.getLogger(__name__)


class JobOutcome(str, Enum):
    DONE              = "DONE"
    FAILED            = "FAILED"
    CLAIM_LOST        = "CLAIM_LOST"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    NOT_FOUND         = "NOT_FOUND"


class DocumentPipeline:
    """
    Stateless between jobs and safe to share across asyncio tasks; the
    claim is the only coordination between concurrent workers.

    Usage:
        pipeline = build_pipeline()
        outcome = await pipeline.process_next_pending()
    """

    def __init__(
        self,
        session_factory:   async_sessionmaker[AsyncSession],
        storage:           StorageProvider,
        text_extractor:    TextExtractor | None              = None,
        extraction_client: StructuredExtractionClient | None = None,
    ) -> None:
        self._jobs = JobStore(session_factory)
        self._persister = ExtractionPersister(session_factory)
        self._storage = storage
        self._text_extractor = text_extractor or TextExtractor()
        self._extraction_client = extraction_client or StructuredExtractionClient()

    @property
    def jobs(self) -> JobStore:
        return self._jobs

    # -----------------------------------------------------------------------
    # Trigger entry points
    # -----------------------------------------------------------------------

    async def process_document(self, document_id: uuid.UUID) -> JobOutcome:
        job = await self._jobs.get_for_document(document_id)
        if job is None:
            logger.warning("No job for document | doc=%s", document_id)
            return JobOutcome.NOT_FOUND
        return await self.process_job(job.id)

    async def process_next_pending(self) -> JobOutcome | None:
        """Returns None when the queue is empty."""
        job_id = await self._jobs.next_pending_job_id()
        if job_id is None:
            return None
        return await self.process_job(job_id)

    # -----------------------------------------------------------------------
    # Per-job procedure
    # -----------------------------------------------------------------------

    async def process_job(self, job_id: uuid.UUID) -> JobOutcome:
        claim_token = await self._jobs.acquire(job_id)
        if claim_token is None:
            if await self._jobs.get(job_id) is None:
                return JobOutcome.NOT_FOUND
            return JobOutcome.CLAIM_LOST

        ctx = await self._jobs.get_context(job_id)
        if ctx is None:
            # document deleted between claim and load (cascade removed the job)
            return JobOutcome.NOT_FOUND

        t0 = time.monotonic()
        logger.info(
            "Processing | job=%s doc=%s media_type=%s language=%s",
            ctx.job_id, ctx.document_id, ctx.media_type, ctx.language,
        )

        try:
            data = await self._storage.read(ctx.file_ref)
            extracted = await self._text_extractor.extract(
                data, ctx.media_type, language=ctx.language, filename=ctx.original_filename,
            )
            llm_input = (
                no_text_placeholder(ctx.language) if extracted.is_empty else extracted.text
            )
            result = await self._extraction_client.extract(llm_input, ctx.language)
        except PipelineError as exc:
            logger.warning(
                "Pipeline error | job=%s doc=%s error_type=%s error=%s",
                ctx.job_id, ctx.document_id, type(exc).__name__, exc,
            )
            await self._jobs.mark_failed(ctx.job_id, str(exc), claim_token)
            return JobOutcome.FAILED
        except Exception as exc:
            logger.exception("Unexpected error | job=%s doc=%s", ctx.job_id, ctx.document_id)
            await self._jobs.mark_failed(
                ctx.job_id, f"{type(exc).__name__}: {exc}", claim_token,
            )
            return JobOutcome.FAILED

        try:
            await self._persister.apply(
                ctx.document_id,
                ctx.job_id,
                result,
                language=ctx.language,
                extracted_text=extracted.text,
                claim_token=claim_token,
            )
        except PersistenceError as exc:
            logger.error(
                "Persistence error, job left PROCESSING | job=%s doc=%s error=%s",
                ctx.job_id, ctx.document_id, exc,
            )
            return JobOutcome.PERSISTENCE_ERROR

        logger.info(
            "Done | job=%s doc=%s strategy=%s chars=%d elapsed_ms=%.0f",
            ctx.job_id, ctx.document_id, extracted.strategy_name,
            len(extracted.text), (time.monotonic() - t0) * 1000,
        )
        return JobOutcome.DONE


def build_pipeline(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> DocumentPipeline:
    """Default wiring for workers and the API: configured DB, storage and OpenAI."""
    from paperfix.db.session import AsyncSessionLocal
    from paperfix.storage.factory import get_storage

    return DocumentPipeline(
        session_factory=session_factory or AsyncSessionLocal,
        storage=get_storage(),
    )
