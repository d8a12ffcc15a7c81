"""
Root conftest.py - Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : documents_engine, ingestion_engine, document_store,
                    ingestion_store, status_query, mock_publisher,
                    sample_pdf_bytes, pdf_file, upload_client, status_client

Environment strategy:
  - Real SQL against throwaway sqlite+aiosqlite files under tmp_path; each
    test gets empty tables created from the ORM metadata.
  - Celery talks to the in-memory kombu transport; nothing reaches RabbitMQ.
  - The broker publisher is a MagicMock(spec=EventPublisher) in service and
    API tests.

How to run:
  pytest                               # all tests
  pytest -m unit                       # unit tests only
  pytest -m integration                # HTTP-level tests (still no external services)
  pytest tests/unit/test_ingestion.py  # single file
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DOCUMENTS_DATABASE_URL",        "sqlite+aiosqlite:///./test-documents.db")
os.environ.setdefault("INGESTION_DATABASE_URL",        "sqlite+aiosqlite:///./test-ingestions.db")
os.environ.setdefault("CELERY_BROKER_URL",             "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND",         "cache+memory://")
os.environ.setdefault("UPLOAD_PUBLISH_FAILURE_POLICY", "abort")
os.environ.setdefault("INGEST_MAX_RETRIES",            "3")
os.environ.setdefault("INGEST_RETRY_BACKOFF_SECONDS",  "30")
os.environ.setdefault("APP_ENV",                       "development")
os.environ.setdefault("DEBUG",                         "true")


TEST_USER_ID = "user-1"


# ─────────────────────────────────────────────────────────────────────────────
# PDF builder
# ─────────────────────────────────────────────────────────────────────────────

def build_pdf(text: str | None = None) -> bytes:
    """
    Single-page PDF with a correct xref table.
    With `text`, the page draws it in Helvetica so pypdf can extract it;
    without, the page has an empty content stream (no text layer).
    """
    stream = f"BT /F1 18 Tf 72 720 Td ({text}) Tj ET".encode() if text else b""
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_at
    return bytes(out)


def make_payload(
    file_url:    str,
    document_id: str | None = None,
    user_id:     str = TEST_USER_ID,
) -> dict:
    """DocumentUploaded message body as it arrives from the broker."""
    return {
        "documentId": document_id or str(uuid.uuid4()),
        "userId":     user_id,
        "fileUrl":    file_url,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Sample file bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Valid one-page PDF containing the text 'Hello PDF'."""
    return build_pdf("Hello PDF")


@pytest.fixture
def blank_pdf_bytes() -> bytes:
    """Valid PDF with no text layer (scanned-image style)."""
    return build_pdf()


@pytest.fixture
def pdf_file(tmp_path, sample_pdf_bytes) -> Path:
    path = tmp_path / "report.pdf"
    path.write_bytes(sample_pdf_bytes)
    return path


# ─────────────────────────────────────────────────────────────────────────────
# Stub extractor
# ─────────────────────────────────────────────────────────────────────────────

class StubExtractor:
    """
    Stand-in for PdfTextExtractor.
    Returns `result` (any shape the consumer accepts) or raises `exc`;
    `delay` blocks the worker thread to exercise the extraction timeout.
    """

    def __init__(self, result=None, exc: Exception | None = None, delay: float = 0.0):
        self.result = result
        self.exc    = exc
        self.delay  = delay
        self.calls: list[bytes] = []

    def extract(self, data: bytes):
        import time

        self.calls.append(data)
        if self.delay:
            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


@pytest.fixture
def stub_extractor():
    from docingest.processing.extractor import ExtractionResult
    return StubExtractor(result=ExtractionResult(text="Quarterly revenue grew 12%.", page_count=1))


# ─────────────────────────────────────────────────────────────────────────────
# Databases (sqlite+aiosqlite, one file per test)
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def documents_engine(tmp_path):
    from docingest.db.session import create_engine
    from docingest.models.documents import DocumentsBase

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'documents.db'}", pooled=False)
    async with engine.begin() as conn:
        await conn.run_sync(DocumentsBase.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def ingestion_engine(tmp_path):
    from docingest.db.session import create_engine
    from docingest.models.ingestions import IngestionBase

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ingestions.db'}", pooled=False)
    async with engine.begin() as conn:
        await conn.run_sync(IngestionBase.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def document_store(documents_engine):
    from docingest.db.session import create_session_factory
    from docingest.services.documents import DocumentStore
    return DocumentStore(create_session_factory(documents_engine))


@pytest.fixture
def ingestion_store(ingestion_engine):
    from docingest.db.session import create_session_factory
    from docingest.services.ingestion import IngestionStore
    return IngestionStore(create_session_factory(ingestion_engine))


@pytest.fixture
def status_query(ingestion_store):
    from docingest.services.ingestion import IngestionStatusQuery
    return IngestionStatusQuery(ingestion_store)


# ─────────────────────────────────────────────────────────────────────────────
# Mock event publisher
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_publisher():
    """Mocked EventPublisher - records calls without touching Celery/broker."""
    from docingest.services.publisher import EventPublisher
    publisher = MagicMock(spec=EventPublisher)
    publisher.publish = AsyncMock(return_value=None)
    return publisher


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test clients with dependency overrides
# ─────────────────────────────────────────────────────────────────────────────

MAX_TEST_UPLOAD_BYTES = 64 * 1024


@pytest.fixture
def upload_settings(tmp_path):
    from docingest.core.config import Settings
    return Settings(
        upload_dir=str(tmp_path / "uploads"),
        max_file_size_bytes=MAX_TEST_UPLOAD_BYTES,
        upload_publish_failure_policy="abort",
    )


@pytest.fixture
def make_document_service(document_store, mock_publisher):
    """Factory: DocumentService over the sqlite store and the mocked publisher."""
    def _build(policy: str = "abort"):
        from docingest.core.config import PublishFailurePolicy
        from docingest.services.documents import DocumentService
        return DocumentService(
            store=document_store,
            publisher=mock_publisher,
            policy=PublishFailurePolicy(policy),
        )
    return _build


@pytest.fixture
def upload_app_with_overrides(upload_settings, make_document_service):
    """
    Upload app with its external dependencies overridden:
      - get_settings         → tmp upload dir, small size limit
      - get_document_service → sqlite DocumentStore + mocked publisher
    """
    from docingest.api.dependencies import get_document_service
    from docingest.core.config import get_settings
    from docingest.main import upload_app

    service = make_document_service("abort")
    upload_app.dependency_overrides[get_settings]         = lambda: upload_settings
    upload_app.dependency_overrides[get_document_service] = lambda: service

    yield upload_app

    upload_app.dependency_overrides.clear()


@pytest.fixture
def ingestion_app_with_overrides(status_query):
    from docingest.api.dependencies import get_status_query
    from docingest.main import ingestion_app

    ingestion_app.dependency_overrides[get_status_query] = lambda: status_query

    yield ingestion_app

    ingestion_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def upload_client(upload_app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client for the upload service.

    httpx >= 0.28 removed the 'app=' shortcut; use ASGITransport explicitly.
    """
    from httpx import ASGITransport
    transport = ASGITransport(app=upload_app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def status_client(ingestion_app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    from httpx import ASGITransport
    transport = ASGITransport(app=ingestion_app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
