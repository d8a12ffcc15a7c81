"""
Unit Tests - FileAccessor, LocalUploadStore and PdfTextExtractor
"""

from __future__ import annotations

from pathlib import Path

import pytest

from docingest.core.errors import ExtractionError, FileAccessError
from docingest.processing.extractor import PdfTextExtractor
from docingest.storage.files import FileAccessor, LocalUploadStore


# ─────────────────────────────────────────────────────────────────────────────
# FileAccessor
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestFileAccessor:

    def test_relative_path_resolved_against_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        resolved = FileAccessor().resolve("uploads/../uploads/a.pdf")
        assert resolved == (tmp_path / "uploads" / "a.pdf").resolve()
        assert resolved.is_absolute()

    def test_file_uri(self, pdf_file):
        assert FileAccessor().resolve(pdf_file.as_uri()) == pdf_file.resolve()

    def test_percent_encoded_uri(self, tmp_path):
        target = tmp_path / "my report.pdf"
        assert FileAccessor().resolve("file://" + str(target).replace(" ", "%20")) == target.resolve()

    async def test_read_bytes(self, pdf_file, sample_pdf_bytes):
        assert await FileAccessor().read_bytes(pdf_file) == sample_pdf_bytes

    async def test_missing_file_is_file_access_error(self, tmp_path):
        missing = tmp_path / "missing.pdf"
        with pytest.raises(FileAccessError) as exc_info:
            await FileAccessor().read_bytes(missing)
        assert exc_info.value.path == str(missing)
        assert exc_info.value.code == "FILE_ACCESS_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# LocalUploadStore
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.documents
class TestLocalUploadStore:

    async def test_save_creates_dir_and_returns_absolute_path(self, tmp_path, sample_pdf_bytes):
        store = LocalUploadStore(tmp_path / "uploads")

        path = await store.save(sample_pdf_bytes)

        assert path.is_absolute()
        assert path.parent == (tmp_path / "uploads").resolve()
        assert path.suffix == ".pdf"
        assert path.read_bytes() == sample_pdf_bytes

    async def test_names_do_not_collide(self, tmp_path):
        store = LocalUploadStore(tmp_path)
        paths = {await store.save(b"%PDF-1.4") for _ in range(20)}
        assert len(paths) == 20


# ─────────────────────────────────────────────────────────────────────────────
# PdfTextExtractor
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ingestion
class TestPdfTextExtractor:

    def test_extracts_page_text(self, sample_pdf_bytes):
        result = PdfTextExtractor().extract(sample_pdf_bytes)
        assert result.page_count == 1
        assert "Hello PDF" in result.text
        assert result.elapsed_ms >= 0

    def test_no_text_layer_gives_none(self, blank_pdf_bytes):
        result = PdfTextExtractor().extract(blank_pdf_bytes)
        assert result.text is None
        assert result.page_count == 1

    @pytest.mark.parametrize(
        "data",
        [b"", b"not a pdf", b"%PDF-1.4\ntruncated"],
        ids=["empty", "garbage", "truncated"],
    )
    def test_unparseable_input_is_extraction_error(self, data):
        with pytest.raises(ExtractionError):
            PdfTextExtractor().extract(data)
