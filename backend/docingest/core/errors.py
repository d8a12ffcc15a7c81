"""
Pipeline error kinds.

Each kind maps to one broker-level decision in workers/tasks.py:

  MalformedEvent    -> reject without requeue (poison message)
  FileAccessError   -> FAILED record written, retried by the broker policy
  ExtractionError   -> FAILED record written, retried by the broker policy
  PersistenceError  -> message not acknowledged, redelivered
  PublishError      -> raised synchronously to the upload path
"""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for every error raised by the upload/ingestion pipeline."""

    code: str = "INGESTION_ERROR"


class MalformedEvent(IngestionError):
    code = "MALFORMED_EVENT"

    def __init__(self, message: str, payload: object = None) -> None:
        super().__init__(message)
        self.payload = payload


class FileAccessError(IngestionError):
    code = "FILE_ACCESS_ERROR"

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ExtractionError(IngestionError):
    code = "EXTRACTION_ERROR"


class PersistenceError(IngestionError):
    code = "PERSISTENCE_ERROR"


class PublishError(IngestionError):
    code = "PUBLISH_ERROR"
