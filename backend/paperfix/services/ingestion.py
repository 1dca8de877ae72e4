"""
Document Ingestion Service

Orchestrates the upload path:
  1. Read the upload with a hard size ceiling
  2. Detect the media type from magic bytes (never the client header)
  3. Validate the language preference
  4. Store the bytes under a server-built reference
  5. Insert Document + PENDING ProcessingJob in one transaction
  6. Publish immediate processing to Celery (after commit)
  7. Return the 202 response

A failed publish is not fatal: the job is committed as PENDING and the
polling worker picks it up on its next tick.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paperfix.core.config import settings
from paperfix.core.dates import utcnow
from paperfix.core.exceptions import UploadRejected
from paperfix.models.documents import Document
from paperfix.schemas.documents import (
    ALLOWED_IMAGE_TYPES,
    PDF_MEDIA_TYPE,
    SUPPORTED_LANGUAGES,
    DocumentUploadResponse,
    JobStatus,
)
from paperfix.services.jobs import JobStore
from paperfix.storage.base import StorageProvider, sanitize_filename

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# File type detection
# ---------------------------------------------------------------------------

# Magic byte signatures, checked against the start of the file
_MAGIC_BYTES: dict[bytes, str] = {
    b"%PDF":                 PDF_MEDIA_TYPE,
    b"\xff\xd8\xff":         "image/jpeg",
    b"\x89PNG\r\n\x1a\n":    "image/png",
    b"GIF87a":               "image/gif",
    b"GIF89a":               "image/gif",
    b"II*\x00":              "image/tiff",
    b"MM\x00*":              "image/tiff",
    b"BM":                   "image/bmp",
}


def detect_media_type(file_head: bytes) -> str:
    """Media type from magic bytes; 'application/octet-stream' when unknown."""
    if file_head[:4] == b"RIFF" and file_head[8:12] == b"WEBP":
        return "image/webp"
    for magic, mime in _MAGIC_BYTES.items():
        if file_head.startswith(magic):
            return mime
    return "application/octet-stream"


def is_supported_media_type(media_type: str) -> bool:
    return media_type == PDF_MEDIA_TYPE or media_type in ALLOWED_IMAGE_TYPES


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    Stateless service object; all dependencies are injected.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage:         StorageProvider,
        task_publisher:  "TaskPublisher",
        max_upload_bytes: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._storage = storage
        self._publisher = task_publisher
        self._max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    async def ingest(
        self,
        owner_id: uuid.UUID,
        file:     UploadFile,
        language: str | None = None,
    ) -> DocumentUploadResponse:
        """
        Raises:
            UploadRejected: missing/empty/oversized file, unsupported type or
                language, or a storage failure.
        """
        language = (language or settings.default_language).strip().lower()
        if language not in SUPPORTED_LANGUAGES:
            raise UploadRejected(
                "UNSUPPORTED_LANGUAGE",
                f"Language '{language}' is not supported. "
                f"Allowed: {', '.join(sorted(SUPPORTED_LANGUAGES))}.",
            )

        data = await self._read_upload(file)

        media_type = detect_media_type(data[:16])
        if not is_supported_media_type(media_type):
            raise UploadRejected(
                "UNSUPPORTED_FILE_TYPE",
                f"File '{file.filename}' is not a PDF or a supported image.",
            )

        original_filename = file.filename or "upload"
        document_id = uuid.uuid4()
        logger.info(
            "Ingest start | owner=%s doc=%s file=%s size=%d media_type=%s",
            owner_id, document_id, sanitize_filename(original_filename), len(data), media_type,
        )

        try:
            stored = await self._storage.write(
                owner_id, document_id, original_filename, data, media_type,
            )
        except Exception as exc:
            logger.exception("Storage write failed | owner=%s doc=%s", owner_id, document_id)
            raise UploadRejected(
                "STORAGE_ERROR", f"Failed to store the document: {exc}", status_code=500,
            ) from exc

        async with self._session_factory() as session:
            async with session.begin():
                document = Document(
                    id=document_id,
                    owner_id=owner_id,
                    file_ref=stored.ref,
                    media_type=media_type,
                    original_filename=original_filename,
                    language=language,
                )
                session.add(document)
                job = JobStore.create_for_document(session, document)

        try:
            await self._publisher.publish_processing_task(document_id)
        except Exception as exc:
            # job is committed as PENDING; the poller will pick it up
            logger.error("Failed to publish processing task | doc=%s error=%s", document_id, exc)

        return DocumentUploadResponse(
            document_id=document_id,
            job_id=job.id,
            job_status=JobStatus.PENDING,
            original_filename=original_filename,
            media_type=media_type,
            language=language,
            size_bytes=len(data),
            created_at=document.created_at or utcnow(),
        )

    async def _read_upload(self, file: UploadFile | None) -> bytes:
        if file is None or not file.filename:
            raise UploadRejected("MISSING_FILE", "No file was included in the request.")

        # one byte past the ceiling is enough to know the file is too large
        data = await file.read(self._max_upload_bytes + 1)

        if not data:
            raise UploadRejected("MISSING_FILE", "The uploaded file is empty.")

        if len(data) > self._max_upload_bytes:
            raise UploadRejected(
                "FILE_TOO_LARGE",
                f"File exceeds the {self._max_upload_bytes / 1_048_576:.0f} MB limit.",
                status_code=413,
            )

        return data


# ---------------------------------------------------------------------------
# Task publisher — thin abstraction over Celery .apply_async()
# Injected into IngestionService so it can be mocked in tests.
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Sends the immediate-mode processing task to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish_processing_task(self, document_id: uuid.UUID) -> None:
        """Runs in a thread executor to avoid blocking the async event loop."""
        from paperfix.workers.tasks import process_document

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(
            None,
            lambda: process_document.apply_async(
                kwargs={"document_id": str(document_id)},
            ),
        )
        logger.info("Processing task published | doc=%s", document_id)
