"""
Document Upload - Pydantic Request/Response Schemas

Covers POST /api/v1/documents/upload on the upload service and the shared
structured error envelope used by both services.

Design decisions:
  - document_id is always server-generated (UUID4); never client-supplied.
  - Only PDF is accepted; the check uses both extension and magic bytes.
  - All timestamps are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Accepted file type
# ---------------------------------------------------------------------------

ALLOWED_EXTENSIONS: frozenset[str] = frozenset({".pdf"})
PDF_MAGIC_BYTES: bytes = b"%PDF"


# ---------------------------------------------------------------------------
# Upload success response - 202 Accepted
# ---------------------------------------------------------------------------

class DocumentUploadResponse(BaseModel):
    """
    Returned after the document row is committed and its event published.
    HTTP 202 - extraction happens asynchronously in the ingestion service.
    """
    message:     str      = "File uploaded successfully"
    document_id: UUID     = Field(..., description="Server-generated document UUID")
    status:      str      = Field("uploaded", description="Upload-side status")
    user_id:     str      = Field(..., description="Owner (from the X-User-ID gateway header)")
    created_at:  datetime = Field(..., description="UTC timestamp of the document row")


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error - may appear in a list."""
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

class UploadErrors:
    """Factories for every documented error case."""

    @staticmethod
    def unsupported_file_type(filename: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message="Only PDF files are allowed.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"'{filename}' is not a PDF document.",
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit_bytes: int) -> ErrorResponse:
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {limit_bytes // (1024 * 1024)} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {limit_bytes:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="File must be provided.",
            details=[
                ErrorDetail(
                    field="file",
                    message="The 'file' multipart field is required and must not be empty.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def missing_user() -> ErrorResponse:
        return ErrorResponse(
            error_code="UNAUTHENTICATED",
            message="User not authenticated.",
            details=[
                ErrorDetail(
                    field="X-User-ID",
                    message="The gateway must forward the authenticated user id.",
                    code="UNAUTHENTICATED",
                )
            ],
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
    def queue_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="QUEUE_ERROR",
            message="Document could not be queued for processing; the upload was rolled back.",
            details=[
                ErrorDetail(
                    field=None,
                    message="The message broker may be temporarily unavailable. Retry the upload.",
                    code="QUEUE_ERROR",
                )
            ],
            request_id=request_id,
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred. Our team has been notified.",
            details=[],
            request_id=request_id,
        )


# ---------------------------------------------------------------------------
# HTTP status code → error code mapping (for OpenAPI documentation)
# ---------------------------------------------------------------------------

HTTP_ERROR_MAP: dict[int, str] = {
    400: "UNSUPPORTED_FILE_TYPE",   # not a PDF, empty file
    401: "UNAUTHENTICATED",         # missing X-User-ID
    413: "FILE_TOO_LARGE",          # body exceeds max_file_size_bytes
    422: "VALIDATION_ERROR",        # FastAPI Pydantic validation failure
    500: "INTERNAL_ERROR",          # unhandled exception
    503: "QUEUE_ERROR",             # broker unavailable, upload aborted
}
