"""
PDF Text Extraction
═══════════════════

Thin wrapper around pypdf that gives the ingestion consumer one call:

    result = PdfTextExtractor().extract(pdf_bytes)
    result.text   # str, or None when the document has no text layer

Extraction is CPU-bound and synchronous; the consumer runs it in a worker
thread under a timeout. Any parser failure is raised as ExtractionError so the
attempt is recorded as FAILED. A PDF that parses but yields no text is not an
error.
"""

from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docingest.core.errors import ExtractionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionResult:
    """
    text        : concatenated page text ("\n\n" between pages); None if no page had text
    page_count  : pages in the document
    elapsed_ms  : wall time spent in the parser
    """
    text:       str | None
    page_count: int = 0
    elapsed_ms: float = 0.0


class TextExtractor(Protocol):
    def extract(self, data: bytes) -> ExtractionResult: ...


class PdfTextExtractor:
    """Stateless pypdf-backed extractor."""

    def extract(self, data: bytes) -> ExtractionResult:
        t0 = time.monotonic()
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PyPdfError, ValueError, KeyError, TypeError) as exc:
            raise ExtractionError(f"PDF parse failed: {exc}") from exc

        text = "\n\n".join(p for p in pages if p.strip())
        elapsed_ms = (time.monotonic() - t0) * 1000

        logger.debug(
            "Extraction | pages=%d chars=%d elapsed=%.1fms",
            len(pages), len(text), elapsed_ms,
        )
        return ExtractionResult(
            text=text or None,
            page_count=len(pages),
            elapsed_ms=elapsed_ms,
        )
