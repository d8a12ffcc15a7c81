"""
Ingestion Status API Router (ingestion service)

GET /api/v1/ingestions/{document_id}           latest attempt, or found=false
GET /api/v1/ingestions/{document_id}/attempts  every attempt, newest first

A document with no record is reported as found=false with HTTP 200: it may
not have been processed yet, its event may never have arrived, or it may not
exist. This service cannot tell those apart, so callers poll.
FAILED attempts are returned as-is.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from docingest.api.dependencies import StatusQuery
from docingest.schemas.ingestions import IngestionAttemptsResponse, IngestionLookupResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/ingestions",
    tags=["Ingestion Status"],
)


@router.get(
    "/{document_id}",
    response_model=IngestionLookupResponse,
    summary="Latest ingestion outcome for a document",
)
async def get_ingestion(document_id: str, query: StatusQuery) -> IngestionLookupResponse:
    record = await query.get_by_document_id(document_id)
    if record is None:
        logger.debug("Ingestion not found | doc=%s", document_id)
    return IngestionLookupResponse(
        document_id=document_id,
        found=record is not None,
        ingestion=record,
    )


@router.get(
    "/{document_id}/attempts",
    response_model=IngestionAttemptsResponse,
    summary="All ingestion attempts for a document",
)
async def list_ingestion_attempts(document_id: str, query: StatusQuery) -> IngestionAttemptsResponse:
    return IngestionAttemptsResponse(
        document_id=document_id,
        attempts=await query.list_attempts(document_id),
    )
