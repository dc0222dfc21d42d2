"""
Format Extractors
═════════════════

One extractor per supported format family. Each converts a local file
into plain text, or signals a format-specific condition:

  PDF         PyMuPDF native text layer. Under 100 characters of text
              means the PDF is image-only → ExtractionResult.scanned_pdf.
              Parse errors → ExtractionResult.failed(message).
  DOCX        python-docx paragraphs + table cells, stripped.
  IMAGE       OCR over the whole image via the configured OcrBackend.
              Engine failures raise OcrFailedError.
  PLAIN_TEXT  UTF-8 decode with latin-1 fallback, returned as-is.

Blocking parsers run in the default thread executor so a large
document never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from docsummary.processing.ocr import OcrBackend

logger = logging.getLogger(__name__)

# PDFs with less extractable text than this are treated as scanned
MIN_PDF_TEXT_CHARS = 100


# ---------------------------------------------------------------------------
# Format families
# ---------------------------------------------------------------------------

class FormatFamily(str, Enum):
    PDF        = "pdf"
    DOCX       = "docx"
    IMAGE      = "image"
    PLAIN_TEXT = "plain_text"


EXTENSION_FAMILIES: dict[str, FormatFamily] = {
    ".pdf":  FormatFamily.PDF,
    ".docx": FormatFamily.DOCX,
    **{ext: FormatFamily.IMAGE for ext in (
        ".png", ".jpg", ".jpeg", ".bmp", ".webp", ".tif", ".tiff", ".gif",
    )},
    **{ext: FormatFamily.PLAIN_TEXT for ext in (
        ".txt", ".md", ".markdown", ".json", ".js", ".ts", ".py",
        ".html", ".htm", ".css", ".xml", ".csv", ".log", ".yaml", ".yml",
    )},
}

MIME_FAMILIES: dict[str, FormatFamily] = {
    "application/pdf": FormatFamily.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": FormatFamily.DOCX,
    "application/json": FormatFamily.PLAIN_TEXT,
    "application/xml":  FormatFamily.PLAIN_TEXT,
}


def family_for_extension(ext: str) -> FormatFamily | None:
    return EXTENSION_FAMILIES.get(ext.lower())


def family_for_mime_type(mime_type: str | None) -> FormatFamily | None:
    if not mime_type:
        return None
    base = mime_type.split(";")[0].strip().lower()
    if base in MIME_FAMILIES:
        return MIME_FAMILIES[base]
    if base.startswith("image/"):
        return FormatFamily.IMAGE
    if base.startswith("text/"):
        return FormatFamily.PLAIN_TEXT
    return None


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractionResult:
    """
    Tagged outcome of extraction.

    text     : extracted text ("" on error)
    scanned  : True if the document looks image-only (PDF heuristic)
    error    : failure message; None on success
    family   : format family that handled the file, if any
    """
    text:    str                 = ""
    scanned: bool                = False
    error:   str | None          = None
    family:  FormatFamily | None = None

    @classmethod
    def ok(cls, text: str, family: FormatFamily | None = None) -> "ExtractionResult":
        return cls(text=text, family=family)

    @classmethod
    def scanned_pdf(cls, text: str = "") -> "ExtractionResult":
        return cls(text=text, scanned=True, family=FormatFamily.PDF)

    @classmethod
    def failed(cls, error: str, family: FormatFamily | None = None) -> "ExtractionResult":
        return cls(error=error, family=family)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_scanned(self) -> bool:
        return self.scanned


# ---------------------------------------------------------------------------
# Abstract extractor
# ---------------------------------------------------------------------------

class BaseTextExtractor(ABC):

    @property
    @abstractmethod
    def family(self) -> FormatFamily:
        """Format family this extractor handles."""

    @abstractmethod
    async def extract(self, path: Path) -> ExtractionResult:
        """Extract text from a local file."""

    @staticmethod
    async def _in_thread(func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

class PdfExtractor(BaseTextExtractor):
    """PyMuPDF native text layer. No OCR for whole PDFs."""

    @property
    def family(self) -> FormatFamily:
        return FormatFamily.PDF

    async def extract(self, path: Path) -> ExtractionResult:
        try:
            text = await self._in_thread(self._extract_sync, path)
        except Exception as exc:
            logger.warning("PDF parse failed | path=%s error=%s", path.name, exc)
            return ExtractionResult.failed(str(exc) or type(exc).__name__, self.family)

        if len(text) < MIN_PDF_TEXT_CHARS:
            logger.info("PDF looks scanned | path=%s chars=%d", path.name, len(text))
            return ExtractionResult.scanned_pdf(text)
        return ExtractionResult.ok(text, self.family)

    @staticmethod
    def _extract_sync(path: Path) -> str:
        import fitz  # PyMuPDF

        with fitz.open(str(path), filetype="pdf") as doc:
            pages = [(page.get_text("text") or "").strip() for page in doc]
        return "\n\n".join(p for p in pages if p).strip()


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

class DocxExtractor(BaseTextExtractor):

    @property
    def family(self) -> FormatFamily:
        return FormatFamily.DOCX

    async def extract(self, path: Path) -> ExtractionResult:
        text = await self._in_thread(self._extract_sync, path)
        return ExtractionResult.ok(text, self.family)

    @staticmethod
    def _extract_sync(path: Path) -> str:
        import docx

        document = docx.Document(str(path))
        parts = [para.text for para in document.paragraphs if para.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))
        return "\n".join(parts).strip()


# ---------------------------------------------------------------------------
# Raster image
# ---------------------------------------------------------------------------

class ImageExtractor(BaseTextExtractor):
    """Full-image OCR. OcrFailedError propagates to the pipeline."""

    def __init__(self, ocr: OcrBackend, language: str = "eng") -> None:
        self._ocr      = ocr
        self._language = language

    @property
    def family(self) -> FormatFamily:
        return FormatFamily.IMAGE

    async def extract(self, path: Path) -> ExtractionResult:
        text = await self._ocr.recognize(path, self._language)
        return ExtractionResult.ok(text, self.family)


# ---------------------------------------------------------------------------
# Plain text / source-like
# ---------------------------------------------------------------------------

class PlainTextExtractor(BaseTextExtractor):

    @property
    def family(self) -> FormatFamily:
        return FormatFamily.PLAIN_TEXT

    async def extract(self, path: Path) -> ExtractionResult:
        raw = await self._in_thread(path.read_bytes)
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("latin-1", errors="replace")
        return ExtractionResult.ok(text, self.family)
