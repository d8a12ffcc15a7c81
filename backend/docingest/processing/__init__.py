"""
Document Processing Package
════════════════════════════

  extractor.py  pypdf text extraction used by the ingestion consumer

The extractor is stateless and injected into IngestionConsumer, so tests and
alternative deployments can swap it for any object with an
`extract(bytes) -> ExtractionResult` method.
"""

from docingest.processing.extractor import ExtractionResult, PdfTextExtractor, TextExtractor

__all__ = [
    "ExtractionResult",
    "PdfTextExtractor",
    "TextExtractor",
]
