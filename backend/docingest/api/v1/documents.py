"""
Document Upload API Router (upload service)
POST /api/v1/documents/upload

Request lifecycle:
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Owner taken from X-User-ID (set by the auth gateway) │
  │ 2. File validation: non-empty, size limit, PDF only     │
  │    (extension + %PDF magic bytes)                        │
  │ 3. File written to UPLOAD_DIR under a unique name        │
  │ 4. DocumentService: DB commit → publish event            │
  │ 5. 202 Accepted with the new document_id                 │
  └─────────────────────────────────────────────────────────┘

Authentication itself is not done here; the gateway in front of this service
verifies the caller and forwards the user id.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Header, UploadFile, status
from fastapi.responses import JSONResponse

from docingest.api.dependencies import AppSettings, Documents, UploadStore
from docingest.core.errors import PersistenceError, PublishError
from docingest.schemas.documents import (
    ALLOWED_EXTENSIONS,
    PDF_MAGIC_BYTES,
    DocumentUploadResponse,
    ErrorResponse,
    UploadErrors,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Document Upload"],
)


def _error(status_code: int, body: ErrorResponse, request_id: str) -> JSONResponse:
    body = body.model_copy(update={"request_id": request_id})
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a PDF document for ingestion",
    description=(
        "Stores the PDF, records the document and queues it for text extraction. "
        "Poll GET /api/v1/ingestions/{document_id} on the ingestion service for the outcome."
    ),
    responses={
        202: {"model": DocumentUploadResponse, "description": "File accepted for processing"},
        400: {"model": ErrorResponse, "description": "Missing file or not a PDF"},
        401: {"model": ErrorResponse, "description": "Missing X-User-ID"},
        413: {"model": ErrorResponse, "description": "File exceeds the size limit"},
        500: {"model": ErrorResponse, "description": "Storage failure"},
        503: {"model": ErrorResponse, "description": "Broker unavailable; upload rolled back"},
    },
)
async def upload_document(
    documents: Documents,
    uploads:   UploadStore,
    settings:  AppSettings,
    file:      UploadFile = File(..., description="PDF document"),
    user_id:   Optional[str] = Header(None, alias="X-User-ID"),
) -> JSONResponse:
    request_id = str(uuid.uuid4())

    if not user_id or not user_id.strip():
        return _error(status.HTTP_401_UNAUTHORIZED, UploadErrors.missing_user(), request_id)
    user_id = user_id.strip()

    data = await file.read()
    filename = file.filename or "upload"

    if not data:
        return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.missing_file(), request_id)

    if len(data) > settings.max_file_size_bytes:
        return _error(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            UploadErrors.file_too_large(len(data), settings.max_file_size_bytes),
            request_id,
        )

    if Path(filename).suffix.lower() not in ALLOWED_EXTENSIONS or not data.startswith(PDF_MAGIC_BYTES):
        return _error(
            status.HTTP_400_BAD_REQUEST,
            UploadErrors.unsupported_file_type(filename),
            request_id,
        )

    try:
        stored_path = await uploads.save(data, suffix=".pdf")
    except OSError as exc:
        logger.exception("Upload write failed | user=%s request_id=%s", user_id, request_id)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            UploadErrors.storage_error(str(exc)),
            request_id,
        )

    try:
        doc = await documents.upload_document(user_id, str(stored_path))
    except PublishError:
        # Document row already rolled back by the abort policy; drop the file too
        stored_path.unlink(missing_ok=True)
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            UploadErrors.queue_error(),
            request_id,
        )
    except PersistenceError as exc:
        stored_path.unlink(missing_ok=True)
        logger.error("Document insert failed | user=%s error=%s", user_id, exc)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            UploadErrors.storage_error(),
            request_id,
        )

    result = DocumentUploadResponse(
        document_id=doc.id,
        user_id=doc.user_id,
        status=doc.status,
        created_at=doc.created_at,
    )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=result.model_dump(mode="json"),
        headers={
            "X-Request-ID":  request_id,
            "X-Document-ID": str(doc.id),
        },
    )
