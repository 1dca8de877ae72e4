"""
Documents API Router

  POST /api/v1/documents/upload            multipart upload → 202 + PENDING job
  GET  /api/v1/documents/{document_id}     derived fields, job status, action items
  POST /api/v1/documents/{document_id}/retry[?reprocess=true]
                                           FAILED → PENDING (owner only)

The owner id always comes from the verified JWT, never from the request.
Processing itself runs on the workers; these routes only read state or
enqueue work.
"""

from __future__ import annotations

import logging
import uuid
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from paperfix.auth.dependencies import DB, CurrentUser, Ingestion, Jobs, Retry
from paperfix.core.dates import to_iso_date
from paperfix.core.exceptions import JobNotFound, RetryNotAllowed, UploadRejected
from paperfix.models.documents import ActionItem, Document, ProcessingJob
from paperfix.schemas.documents import (
    ActionItemOut,
    ApiErrors,
    DocumentDetailResponse,
    DocumentUploadResponse,
    ErrorResponse,
    JobOut,
    JobStatus,
    RetryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


# ---------------------------------------------------------------------------
# Serialisation helpers (shared with the jobs / action-items routers)
# ---------------------------------------------------------------------------

def job_out(job: ProcessingJob) -> JobOut:
    return JobOut(
        job_id=job.id,
        document_id=job.document_id,
        status=JobStatus(job.status),
        error=job.error,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def action_item_out(item: ActionItem) -> ActionItemOut:
    return ActionItemOut(
        id=item.id,
        title=item.title,
        description=item.description,
        deadline=to_iso_date(item.deadline),
        status=item.status,
        notes=item.notes,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def document_detail(doc: Document) -> DocumentDetailResponse:
    return DocumentDetailResponse(
        document_id=doc.id,
        original_filename=doc.original_filename,
        media_type=doc.media_type,
        language=doc.language,
        doc_type=doc.doc_type,
        sender=doc.sender,
        amount=doc.amount,
        deadline=to_iso_date(doc.deadline),
        summary=doc.summary,
        confidence=doc.confidence,
        extracted_text=doc.extracted_text,
        job=job_out(doc.job) if doc.job is not None else None,
        action_items=[action_item_out(item) for item in doc.action_items],
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a letter (PDF or photo) for extraction",
    responses={
        202: {"model": DocumentUploadResponse, "description": "Stored; processing is asynchronous"},
        400: {"model": ErrorResponse, "description": "Missing file, unsupported type or language"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
        413: {"model": ErrorResponse, "description": "File exceeds the upload limit"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
    },
)
async def upload_document(
    user:      CurrentUser,
    ingestion: Ingestion,
    file:      UploadFile    = File(..., description="PDF or image (JPEG, PNG, TIFF, WEBP …)"),
    language:  str | None    = Form(None, description="nl | ar | en (default nl)"),
) -> JSONResponse:
    request_id = str(uuid.uuid4())
    try:
        result = await ingestion.ingest(user.user_id, file, language)
    except UploadRejected as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail=ApiErrors.upload_rejected(exc.error_code, exc.message).model_dump(),
        )

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=result.model_dump(mode="json"),
        headers={
            "X-Request-ID":  request_id,
            "X-Document-ID": str(result.document_id),
            "Location":      f"/api/v1/documents/{result.document_id}",
        },
    )


# ---------------------------------------------------------------------------
# GET /documents/{document_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}",
    response_model=DocumentDetailResponse,
    summary="Document with extraction results and action items",
    responses={404: {"model": ErrorResponse}},
)
async def get_document(
    document_id: UUID,
    user:        CurrentUser,
    db:          DB,
) -> DocumentDetailResponse:
    result = await db.execute(
        select(Document)
        .options(selectinload(Document.job), selectinload(Document.action_items))
        .where(Document.id == document_id, Document.owner_id == user.user_id)
    )
    doc = result.scalar_one_or_none()
    if doc is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ApiErrors.document_not_found(document_id).model_dump(),
        )
    return document_detail(doc)


# ---------------------------------------------------------------------------
# POST /documents/{document_id}/retry
# ---------------------------------------------------------------------------

@router.post(
    "/{document_id}/retry",
    response_model=RetryResponse,
    summary="Reset a FAILED job to PENDING",
    responses={
        404: {"model": ErrorResponse, "description": "No job for this document"},
        409: {"model": ErrorResponse, "description": "Job is not FAILED"},
    },
)
async def retry_document(
    document_id: UUID,
    user:        CurrentUser,
    retry:       Retry,
    jobs:        Jobs,
    reprocess:   bool = Query(False, description="Enqueue processing immediately"),
) -> RetryResponse:
    try:
        result = await retry.retry(document_id, owner_id=user.user_id, reprocess_now=reprocess)
    except JobNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ApiErrors.job_not_found(document_id).model_dump(),
        )
    except RetryNotAllowed as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=ApiErrors.retry_not_allowed(exc.current_status).model_dump(),
        )

    job = await jobs.get(result.job_id)
    return RetryResponse(
        document_id=document_id,
        job_status=JobStatus(job.status) if job is not None else result.status,
        reprocessed=result.reprocessed,
    )
