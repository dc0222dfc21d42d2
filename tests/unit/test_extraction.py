"""
Unit Tests — Extraction Router, Format Extractors and OCR
══════════════════════════════════════════════════════════
Tests for docsummary/processing/

Coverage:
  ✅ Routing by extension (pdf, docx, image, text, source-like)
  ✅ ".tmp" / no extension → declared MIME type decides
  ✅ Extension/MIME mismatch → extension wins, warning logged
  ✅ Unknown type → failed("unsupported type"), no extractor invoked
  ✅ PDF with a text layer → text
  ✅ PDF with < 100 chars of text → scanned
  ✅ Corrupt PDF → failed with the parser message
  ✅ DOCX paragraphs + table rows, blank paragraphs dropped
  ✅ Plain text UTF-8 and latin-1 fallback
  ✅ Image → OCR backend, language passed through
  ✅ OCR engine failure / timeout → OcrFailedError("OCR failed for image")
  ✅ Tesseract backend converts palette images and strips output
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docsummary.core.errors import OcrFailedError
from docsummary.processing.extractor import UNSUPPORTED_TYPE, ExtractionRouter
from docsummary.processing.extractors import (
    DocxExtractor,
    ExtractionResult,
    FormatFamily,
    ImageExtractor,
    PdfExtractor,
    PlainTextExtractor,
    family_for_mime_type,
)
from docsummary.processing.ocr import OCR_FAILED_MESSAGE, OcrBackend, TesseractOcrBackend


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _mock_ocr(text: str = "RECEIPT 0042\nTotal 19.99", error: Exception | None = None) -> MagicMock:
    ocr = MagicMock(spec=OcrBackend)
    if error is not None:
        ocr.recognize = AsyncMock(side_effect=error)
    else:
        ocr.recognize = AsyncMock(return_value=text)
    return ocr


class _FailingBackend(OcrBackend):
    backend_name = "failing"

    def _recognize_sync(self, image_path: Path, language: str) -> str:
        raise RuntimeError("tesseract is not installed or it's not in your PATH")


class _SlowBackend(OcrBackend):
    backend_name = "slow"

    def _recognize_sync(self, image_path: Path, language: str) -> str:
        time.sleep(0.5)
        return "late"


@pytest.fixture
def router(test_settings):
    return ExtractionRouter.from_settings(test_settings, ocr=_mock_ocr())


# ─────────────────────────────────────────────────────────────────────────────
# Routing
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestRouting:

    @pytest.mark.parametrize("name, family", [
        ("a.pdf",   FormatFamily.PDF),
        ("a.DOCX",  FormatFamily.DOCX),
        ("a.jpeg",  FormatFamily.IMAGE),
        ("a.webp",  FormatFamily.IMAGE),
        ("a.md",    FormatFamily.PLAIN_TEXT),
        ("a.py",    FormatFamily.PLAIN_TEXT),
        ("a.yaml",  FormatFamily.PLAIN_TEXT),
    ])
    def test_extension_selects_family(self, router, name, family):
        assert router.resolve_family(Path(name)) == family

    def test_placeholder_extension_falls_back_to_mime(self, router):
        assert router.resolve_family(Path("blob.tmp"), "application/pdf") == FormatFamily.PDF
        assert router.resolve_family(Path("blob"), "image/heic") == FormatFamily.IMAGE

    def test_mime_parameters_are_ignored(self):
        assert family_for_mime_type("text/plain; charset=utf-8") == FormatFamily.PLAIN_TEXT

    def test_mismatch_routes_by_extension_and_warns(self, router, caplog):
        with caplog.at_level(logging.WARNING, logger="docsummary.processing.extractor"):
            family = router.resolve_family(Path("notes.txt"), "application/pdf")

        assert family == FormatFamily.PLAIN_TEXT
        assert "mismatch" in caplog.text

    async def test_unknown_type_is_unsupported(self, test_settings, tmp_path):
        path = tmp_path / "archive.zip"
        path.write_bytes(b"PK\x03\x04")
        ocr = _mock_ocr()
        router = ExtractionRouter.from_settings(test_settings, ocr=ocr)

        result = await router.extract(path, "application/zip")

        assert result.is_error
        assert result.error == UNSUPPORTED_TYPE
        ocr.recognize.assert_not_awaited()

    async def test_placeholder_without_mime_is_unsupported(self, router, tmp_path):
        path = tmp_path / "blob.tmp"
        path.write_bytes(b"\x00\x01")

        result = await router.extract(path, None)

        assert result.error == UNSUPPORTED_TYPE

    async def test_tmp_file_with_text_mime_is_read_as_text(self, router, tmp_path, long_text):
        path = tmp_path / "blob.tmp"
        path.write_text(long_text)

        result = await router.extract(path, "text/plain")

        assert not result.is_error
        assert result.family == FormatFamily.PLAIN_TEXT
        assert result.text == long_text

    async def test_extractor_exception_becomes_failed_result(self, test_settings, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"PK\x03\x04 definitely not a docx")
        router = ExtractionRouter.from_settings(test_settings, ocr=_mock_ocr())

        result = await router.extract(path)

        assert result.is_error
        assert result.family == FormatFamily.DOCX

    async def test_ocr_failure_propagates(self, test_settings, tmp_path):
        path = tmp_path / "scan.png"
        path.write_bytes(b"\x89PNG")
        router = ExtractionRouter.from_settings(
            test_settings, ocr=_mock_ocr(error=OcrFailedError(OCR_FAILED_MESSAGE)),
        )

        with pytest.raises(OcrFailedError):
            await router.extract(path, "image/png")


# ─────────────────────────────────────────────────────────────────────────────
# PDF
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestPdfExtractor:

    async def test_text_layer_is_extracted(self, make_pdf, long_text):
        path = make_pdf(long_text)

        result = await PdfExtractor().extract(path)

        assert not result.is_error
        assert not result.is_scanned
        assert "Quarterly operations report" in result.text

    async def test_blank_pdf_is_scanned(self, make_pdf):
        result = await PdfExtractor().extract(make_pdf(""))

        assert result.is_scanned
        assert not result.is_error

    async def test_sparse_text_is_scanned(self, make_pdf):
        result = await PdfExtractor().extract(make_pdf("Page 1 of 1"))

        assert result.is_scanned
        assert result.text == "Page 1 of 1"

    async def test_corrupt_pdf_fails(self, tmp_path):
        path = tmp_path / "corrupt.pdf"
        path.write_bytes(b"this is not a pdf at all")

        result = await PdfExtractor().extract(path)

        assert result.is_error
        assert result.error
        assert not result.is_scanned


# ─────────────────────────────────────────────────────────────────────────────
# DOCX
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestDocxExtractor:

    async def test_paragraphs_and_tables(self, sample_docx_path):
        result = await DocxExtractor().extract(sample_docx_path)

        lines = result.text.splitlines()
        assert lines[0] == "Supplier agreement between Acme Ltd and Northwind plc."
        assert lines[1] == "Payment terms are net thirty days from invoice date."
        assert "Contract ID | SA-1044" in lines
        assert "Renewal | Annual" in lines


# ─────────────────────────────────────────────────────────────────────────────
# Plain text
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestPlainTextExtractor:

    async def test_utf8(self, sample_txt_path, long_text):
        result = await PlainTextExtractor().extract(sample_txt_path)
        assert result == ExtractionResult.ok(long_text, FormatFamily.PLAIN_TEXT)

    async def test_latin1_fallback(self, tmp_path):
        path = tmp_path / "legacy.txt"
        path.write_bytes("Café au lait, crème brûlée".encode("latin-1"))

        result = await PlainTextExtractor().extract(path)

        assert result.text == "Café au lait, crème brûlée"


# ─────────────────────────────────────────────────────────────────────────────
# Images and OCR
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.ocr
class TestImageOcr:

    async def test_image_extractor_passes_language(self, tmp_path):
        ocr = _mock_ocr("Invoice 17")
        path = tmp_path / "invoice.png"

        result = await ImageExtractor(ocr, language="deu").extract(path)

        assert result.text == "Invoice 17"
        assert result.family == FormatFamily.IMAGE
        ocr.recognize.assert_awaited_once_with(path, "deu")

    async def test_engine_error_becomes_ocr_failed(self, tmp_path):
        with pytest.raises(OcrFailedError) as exc_info:
            await _FailingBackend().recognize(tmp_path / "a.png")

        assert exc_info.value.message == OCR_FAILED_MESSAGE
        assert exc_info.value.retriable is True

    async def test_engine_timeout_becomes_ocr_failed(self, tmp_path):
        with pytest.raises(OcrFailedError):
            await _SlowBackend(timeout_seconds=0.05).recognize(tmp_path / "a.png")

    async def test_tesseract_converts_and_strips(self, tmp_path):
        from PIL import Image

        path = tmp_path / "palette.png"
        Image.new("P", (40, 20)).save(path)

        with patch("pytesseract.image_to_string", return_value="  Hello OCR \n\n") as ocr_call:
            text = await TesseractOcrBackend().recognize(path, "eng")

        assert text == "Hello OCR"
        image_arg = ocr_call.call_args.args[0]
        assert image_arg.mode == "RGB"
        assert ocr_call.call_args.kwargs == {"lang": "eng"}
