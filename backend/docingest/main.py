"""
FastAPI Applications - Entry Points

Two independently deployable HTTP services share this module:

  upload_app     POST /api/v1/documents/upload
                 owns the documents DB, publishes DocumentUploaded events
  ingestion_app  GET  /api/v1/ingestions/{document_id}[/attempts]
                 read-only view over the ingestions DB

The ingestion consumer itself runs in a Celery worker (workers/tasks.py),
not in either of these processes.

Run:
  uvicorn docingest.main:upload_app    --port 8000
  uvicorn docingest.main:ingestion_app --port 8001

Middleware stack (innermost → outermost):
  1. CORS
  2. Request ID injection + request logging with latency
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from docingest.api.v1.documents import router as documents_router
from docingest.api.v1.ingestions import router as ingestions_router
from docingest.core.config import get_settings
from docingest.core.logging import configure_logging
from docingest.db.session import check_db_health, get_documents_engine, get_ingestion_engine
from docingest.schemas.documents import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifespans - startup / shutdown hooks
# ---------------------------------------------------------------------------

async def _startup_db_check(service: str, engine: AsyncEngine) -> None:
    db_health = await check_db_health(engine)
    if db_health["status"] != "ok":
        logger.critical("Database health check failed at startup | service=%s health=%s", service, db_health)
        raise RuntimeError(f"DB unavailable: {db_health}")
    logger.info("Database: connected | service=%s", service)


@asynccontextmanager
async def upload_lifespan(app: FastAPI):
    """
    Refuse to start without a publish failure policy, then check the
    documents DB.
    """
    settings = get_settings()
    configure_logging(settings.log_level, settings.debug)

    if settings.upload_publish_failure_policy is None:
        logger.critical("UPLOAD_PUBLISH_FAILURE_POLICY is not set (abort|degrade)")
        raise RuntimeError("UPLOAD_PUBLISH_FAILURE_POLICY must be set to 'abort' or 'degrade'")

    logger.info(
        "Starting upload service | env=%s queue=%s policy=%s",
        settings.app_env, settings.queue_name, settings.upload_publish_failure_policy.value,
    )
    engine = get_documents_engine()
    await _startup_db_check("upload", engine)

    yield

    logger.info("Shutting down upload service")
    await engine.dispose()


@asynccontextmanager
async def ingestion_lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.debug)

    logger.info("Starting ingestion status service | env=%s", settings.app_env)
    engine = get_ingestion_engine()
    await _startup_db_check("ingestion", engine)

    yield

    logger.info("Shutting down ingestion status service")
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def _build_app(
    *,
    title:       str,
    service:     str,
    description: str,
    lifespan,
    routers:     list[APIRouter],
    engine:      Callable[[], AsyncEngine],
) -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=title,
        description=description,
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order - last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else [],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID", "X-User-ID"],
        expose_headers=["X-Request-ID", "X-Document-ID"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers.setdefault("X-Request-ID", request_id)

        logger.info(
            "HTTP %s %s %d %.1fms | service=%s user=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            service,
            request.headers.get("X-User-ID", "-"),
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers - uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions; never expose stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | service=%s path=%s request_id=%s",
            service, request.url.path, request_id,
        )
        body = ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    for router in routers:
        app.include_router(router, prefix="/api/v1")

    # ----------------------------------------------------------------
    # Health & readiness endpoints
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {"status": "ok", "service": service}

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness probe",
        description="Returns 200 only if the service database is reachable.",
    )
    async def readiness() -> JSONResponse:
        db_status = await check_db_health(engine())
        if db_status["status"] != "ok":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "database": db_status},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status},
        )

    return app


def create_upload_app() -> FastAPI:
    return _build_app(
        title="Document Upload Service",
        service="upload",
        description="Accepts PDF uploads and announces them to the ingestion pipeline.",
        lifespan=upload_lifespan,
        routers=[documents_router],
        engine=get_documents_engine,
    )


def create_ingestion_app() -> FastAPI:
    return _build_app(
        title="Document Ingestion Status Service",
        service="ingestion",
        description="Reports the outcome of text extraction for uploaded documents.",
        lifespan=ingestion_lifespan,
        routers=[ingestions_router],
        engine=get_ingestion_engine,
    )


# ---------------------------------------------------------------------------
# Application instances (imported by uvicorn)
# ---------------------------------------------------------------------------

upload_app = create_upload_app()
ingestion_app = create_ingestion_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "docingest.main:upload_app",
        host="0.0.0.0",
        port=8000,
        reload=_settings.app_env == "development",
        log_level="debug" if _settings.debug else "info",
        access_log=True,
    )
