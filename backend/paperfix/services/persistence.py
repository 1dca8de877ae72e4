"""
Persistence Transaction — apply one validated ExtractionResult atomically.

One database transaction performs, in order:

  1. UPDATE documents   derived fields (+ raw extracted text)
  2. DELETE action_items for the document
  3. INSERT one OPEN action item per proposed action
     (or exactly one language-appropriate fallback item when there are none)
  4. UPDATE processing_jobs → DONE, error cleared
     (conditional on the job still being PROCESSING)

Any failure rolls back all four steps and surfaces as PersistenceError;
the job is left PROCESSING so a retry or stale reclaim can recover it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperfix.core.dates import to_utc_midnight, utcnow
from paperfix.core.exceptions import PersistenceError
from paperfix.llm.prompts import normalize_language
from paperfix.models.documents import ActionItem, Document, ProcessingJob
from paperfix.schemas.documents import ActionStatus, JobStatus
from paperfix.schemas.extraction import ExtractionResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Fallback action item (no concrete actions found)
# ---------------------------------------------------------------------------

FALLBACK_ACTIONS: dict[str, tuple[str, str]] = {
    "nl": (
        "Controleer dit document",
        "We konden geen duidelijke acties vinden. Lees de brief en bepaal wat je moet doen.",
    ),
    "ar": (
        "تحقق من هذا المستند",
        "لم نتمكن من العثور على إجراءات واضحة. اقرأ الرسالة وحدد ما يجب عليك فعله.",
    ),
    "en": (
        "Review this document",
        "We could not find clear actions. Read the letter and decide what you need to do.",
    ),
}


def fallback_action(language: str | None) -> tuple[str, str]:
    return FALLBACK_ACTIONS[normalize_language(language)]


def _action_rows(
    document_id:  uuid.UUID,
    result:       ExtractionResult,
    language:     str | None,
    doc_deadline: datetime | None,
) -> list[ActionItem]:
    now = utcnow()
    if not result.actions:
        title, description = fallback_action(language)
        return [
            ActionItem(
                id=uuid.uuid4(),
                document_id=document_id,
                title=title,
                description=description,
                deadline=doc_deadline,
                status=ActionStatus.OPEN.value,
                created_at=now,
                updated_at=now,
            )
        ]

    # created_at is offset per row so reads keep the model's action order
    return [
        ActionItem(
            id=uuid.uuid4(),
            document_id=document_id,
            title=action.title,
            description=action.description,
            deadline=to_utc_midnight(action.deadline),
            status=ActionStatus.OPEN.value,
            created_at=now + timedelta(microseconds=i),
            updated_at=now,
        )
        for i, action in enumerate(result.actions)
    ]


class ExtractionPersister:
    """
    Usage:
        persister = ExtractionPersister(AsyncSessionLocal)
        await persister.apply(document_id, job_id, result, language="nl", extracted_text=text)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def apply(
        self,
        document_id:    uuid.UUID,
        job_id:         uuid.UUID,
        result:         ExtractionResult,
        language:       str | None = None,
        extracted_text: str | None = None,
        claim_token:    uuid.UUID | None = None,
    ) -> int:
        """
        Returns the number of action items written.

        With `claim_token`, the job must still be held by that claim;
        a reclaimed and re-claimed job rejects the write.

        Raises:
            PersistenceError: the transaction did not commit.
        """
        doc_deadline = to_utc_midnight(result.deadline)
        job_conditions = [
            ProcessingJob.id == job_id,
            ProcessingJob.status == JobStatus.PROCESSING.value,
        ]
        if claim_token is not None:
            job_conditions.append(ProcessingJob.claim_token == claim_token)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(Document)
                        .where(Document.id == document_id)
                        .values(
                            doc_type=result.doc_type.value,
                            sender=result.sender,
                            amount=result.amount_eur,
                            deadline=doc_deadline,
                            summary=result.summary,
                            confidence=result.rounded_confidence,
                            extracted_text=extracted_text,
                            updated_at=utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )

                    await session.execute(
                        delete(ActionItem)
                        .where(ActionItem.document_id == document_id)
                        .execution_options(synchronize_session=False)
                    )

                    items = _action_rows(document_id, result, language, doc_deadline)
                    session.add_all(items)
                    await session.flush()

                    done = await session.execute(
                        update(ProcessingJob)
                        .where(*job_conditions)
                        .values(
                            status=JobStatus.DONE.value,
                            error=None,
                            claim_token=None,
                            updated_at=utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if done.rowcount != 1:
                        # raising inside begin() rolls back steps 1-3
                        raise PersistenceError(
                            f"Job {job_id} is no longer PROCESSING under this claim; "
                            "extraction discarded"
                        )
        except SQLAlchemyError as exc:
            logger.error("Persistence failed | job=%s doc=%s error=%s", job_id, document_id, exc)
            raise PersistenceError(f"Could not persist extraction: {exc}") from exc

        logger.info(
            "Persisted | job=%s doc=%s type=%s actions=%d fallback=%s",
            job_id, document_id, result.doc_type.value, len(items), not result.actions,
        )
        return len(items)
