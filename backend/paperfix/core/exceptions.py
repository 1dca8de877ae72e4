"""
Error taxonomy for the document pipeline.

Fatal pipeline errors (subclasses of PipelineError) are caught at the
orchestrator boundary and stored on the job as their message string.
Losing a claim race is not an error: JobStore.claim() returns False.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures that end a processing attempt."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class UnsupportedMediaType(PipelineError):
    """The Text Extractor has no strategy for the declared media type."""

    def __init__(self, media_type: str) -> None:
        super().__init__(f"Unsupported media type: {media_type or 'unknown'}")
        self.media_type = media_type


class TextExtractionError(PipelineError):
    """PDF/OCR library failed on the file bytes (corrupt or unreadable file)."""


class StorageReadError(PipelineError):
    """The stored file could not be read back from the storage provider."""


class ServiceTransportError(PipelineError):
    """The extraction service call failed at the network/auth layer."""


class ExtractionValidationError(PipelineError):
    """Generative output still failed schema validation after the repair attempt."""

    def __init__(
        self,
        detail: str,
        original_detail: str | None = None,
        raw_output: str | None = None,
    ) -> None:
        super().__init__(f"LLM output invalid after repair: {detail}")
        self.detail = detail
        self.original_detail = original_detail
        self.raw_output = raw_output


class PersistenceError(PipelineError):
    """The persistence transaction could not commit; the job stays PROCESSING."""


# ---------------------------------------------------------------------------
# Service-level errors raised to the HTTP layer
# ---------------------------------------------------------------------------

class JobNotFound(Exception):
    def __init__(self, document_id) -> None:
        super().__init__(f"No processing job for document {document_id}")
        self.document_id = document_id


class RetryNotAllowed(Exception):
    def __init__(self, document_id, current_status: str) -> None:
        super().__init__(
            f"Retry is only possible for FAILED jobs "
            f"(document {document_id} is {current_status})"
        )
        self.document_id = document_id
        self.current_status = current_status


class ActionItemNotFound(Exception):
    def __init__(self, action_item_id) -> None:
        super().__init__(f"Action item {action_item_id} not found")
        self.action_item_id = action_item_id


class UploadRejected(Exception):
    """Upload failed validation; error_code maps to an ErrorResponse code."""

    def __init__(self, error_code: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
