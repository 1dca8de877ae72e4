"""
Document Pipeline — Pydantic Request/Response Schemas

Covers:
  - Stable status enums shared by the ORM, the pipeline and the API
  - Upload response (202 Accepted)
  - Document detail + action items
  - Job listing used by operational/debug views
  - Structured error bodies for every documented 4xx/5xx case

All timestamps are ISO-8601 UTC; deadlines are serialised as plain
calendar dates (YYYY-MM-DD) read in UTC.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from paperfix.core.dates import parse_iso_date


# ---------------------------------------------------------------------------
# Allowed upload types — enforced before touching storage
# ---------------------------------------------------------------------------

PDF_MEDIA_TYPE = "application/pdf"

ALLOWED_IMAGE_TYPES: frozenset[str] = frozenset(
    {"image/jpeg", "image/png", "image/tiff", "image/webp", "image/bmp", "image/gif"}
)

SUPPORTED_LANGUAGES: frozenset[str] = frozenset({"nl", "ar", "en"})


# ---------------------------------------------------------------------------
# State machines (stable wire strings)
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    """
    Maps to processing_jobs.status.
    Transitions: PENDING → PROCESSING → DONE | FAILED;  FAILED → PENDING (retry only)
    """
    PENDING    = "PENDING"
    PROCESSING = "PROCESSING"
    DONE       = "DONE"
    FAILED     = "FAILED"


class ActionStatus(str, Enum):
    OPEN = "OPEN"
    DONE = "DONE"


# ---------------------------------------------------------------------------
# Upload success response — 202 Accepted
# ---------------------------------------------------------------------------

class DocumentUploadResponse(BaseModel):
    """
    Returned immediately after a successful upload.
    HTTP 202 — the file is stored, extraction runs asynchronously.
    """
    document_id:       UUID      = Field(..., description="Server-generated document UUID")
    job_id:            UUID      = Field(..., description="Processing job created with the document")
    job_status:        JobStatus = Field(JobStatus.PENDING)
    original_filename: str
    media_type:        str       = Field(..., description="Detected media type")
    language:          str
    size_bytes:        int
    created_at:        datetime


# ---------------------------------------------------------------------------
# Document detail — GET /documents/{id}
# ---------------------------------------------------------------------------

class ActionItemOut(BaseModel):
    id:          UUID
    title:       str
    description: str
    deadline:    str | None = Field(None, description="YYYY-MM-DD (UTC calendar date)")
    status:      ActionStatus
    notes:       str | None = None
    created_at:  datetime
    updated_at:  datetime


class JobOut(BaseModel):
    job_id:      UUID
    document_id: UUID
    status:      JobStatus
    error:       str | None = None
    created_at:  datetime
    updated_at:  datetime


class DocumentDetailResponse(BaseModel):
    document_id:       UUID
    original_filename: str
    media_type:        str
    language:          str
    doc_type:          str | None     = None
    sender:            str | None     = None
    amount:            Decimal | None = None
    deadline:          str | None     = Field(None, description="YYYY-MM-DD (UTC calendar date)")
    summary:           str | None     = None
    confidence:        int | None     = None
    extracted_text:    str | None     = None
    job:               JobOut | None  = None
    action_items:      list[ActionItemOut] = Field(default_factory=list)
    created_at:        datetime
    updated_at:        datetime


class JobListResponse(BaseModel):
    jobs: list[JobOut]


class RetryResponse(BaseModel):
    document_id:  UUID
    job_status:   JobStatus
    reprocessed:  bool = False


# ---------------------------------------------------------------------------
# Action item update — PATCH /action-items/{id}
# ---------------------------------------------------------------------------

class ActionItemUpdate(BaseModel):
    """Partial update; omitted fields are left untouched, explicit null clears."""
    title:    str | None = Field(None, min_length=1, max_length=200)
    deadline: str | None = Field(None, description="YYYY-MM-DD or null")
    notes:    str | None = Field(None, max_length=5000)

    @field_validator("deadline")
    @classmethod
    def _deadline_is_calendar_date(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return parse_iso_date(value).isoformat()


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


# ---------------------------------------------------------------------------
# Pre-defined error factories (keeps route handlers thin)
# ---------------------------------------------------------------------------

class ApiErrors:
    """Factories for every documented error case."""

    @staticmethod
    def upload_rejected(error_code: str, message: str) -> ErrorResponse:
        return ErrorResponse(
            error_code=error_code,
            message=message,
            details=[ErrorDetail(field="file", message=message, code=error_code)],
        )

    @staticmethod
    def document_not_found(document_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{document_id}' was not found.",
        )

    @staticmethod
    def job_not_found(document_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="JOB_NOT_FOUND",
            message=f"No processing job exists for document '{document_id}'.",
        )

    @staticmethod
    def retry_not_allowed(current_status: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="RETRY_NOT_ALLOWED",
            message="Retry is only possible for FAILED jobs.",
            details=[
                ErrorDetail(
                    field=None,
                    message=f"Current job status is {current_status}.",
                    code="RETRY_NOT_ALLOWED",
                )
            ],
        )

    @staticmethod
    def action_item_not_found(action_item_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="ACTION_ITEM_NOT_FOUND",
            message=f"Action item '{action_item_id}' was not found.",
        )

    @staticmethod
    def storage_error(detail: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="STORAGE_ERROR",
            message="Failed to store the document. Please retry.",
            details=(
                [ErrorDetail(field=None, message=detail, code="STORAGE_ERROR")]
                if detail
                else []
            ),
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
