"""
Extraction Router
═════════════════

Selects the format extractor for a local file and normalizes every
outcome into one ExtractionResult.

Routing flow:
  1.  File extension → FormatFamily  (authoritative)
  2.  No usable extension (none, or the ".tmp" placeholder)
        → declared MIME type → FormatFamily
  3.  Neither resolves → ExtractionResult.failed("unsupported type"),
      no extractor is invoked
  4.  Run the family's extractor
        - extractor exceptions → ExtractionResult.failed(message)
        - OcrFailedError propagates (transient; the pipeline decides)

When the extension and the declared MIME type name different families
the mismatch is logged and the extension wins.

This module is the only place that knows the family → extractor map.
The pipeline only sees ExtractionResult.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from docsummary.core.config import Settings
from docsummary.core.errors import OcrFailedError
from docsummary.processing.extractors import (
    BaseTextExtractor,
    DocxExtractor,
    ExtractionResult,
    FormatFamily,
    ImageExtractor,
    PdfExtractor,
    PlainTextExtractor,
    family_for_extension,
    family_for_mime_type,
)
from docsummary.processing.ocr import OcrBackend, build_ocr_backend

logger = logging.getLogger(__name__)

UNSUPPORTED_TYPE = "unsupported type"

_PLACEHOLDER_EXTENSIONS = frozenset({"", ".tmp"})


class ExtractionRouter:
    """
    Stateless router — pick and run the right extractor.

    Usage:
        router = ExtractionRouter.from_settings(settings)
        result = await router.extract(path, "application/pdf")
    """

    def __init__(self, extractors: dict[FormatFamily, BaseTextExtractor]) -> None:
        self._extractors = extractors

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        ocr:      OcrBackend | None = None,
    ) -> "ExtractionRouter":
        ocr_backend = ocr or build_ocr_backend(settings)
        return cls({
            FormatFamily.PDF:        PdfExtractor(),
            FormatFamily.DOCX:       DocxExtractor(),
            FormatFamily.IMAGE:      ImageExtractor(ocr_backend, settings.ocr_language),
            FormatFamily.PLAIN_TEXT: PlainTextExtractor(),
        })

    def resolve_family(
        self,
        path:               Path,
        declared_mime_type: str | None = None,
    ) -> FormatFamily | None:
        ext = path.suffix.lower()
        by_mime = family_for_mime_type(declared_mime_type)

        if ext in _PLACEHOLDER_EXTENSIONS:
            return by_mime

        by_ext = family_for_extension(ext)
        if by_ext is not None and by_mime is not None and by_ext != by_mime:
            logger.warning(
                "Extension/MIME mismatch, routing by extension | ext=%s mime=%s",
                ext, declared_mime_type,
            )
        return by_ext

    async def extract(
        self,
        path:               Path,
        declared_mime_type: str | None = None,
    ) -> ExtractionResult:
        family = self.resolve_family(path, declared_mime_type)
        if family is None or family not in self._extractors:
            logger.info(
                "Unsupported type | ext=%s mime=%s", path.suffix or "-", declared_mime_type,
            )
            return ExtractionResult.failed(UNSUPPORTED_TYPE)

        extractor = self._extractors[family]
        t0 = time.monotonic()
        try:
            result = await extractor.extract(path)
        except OcrFailedError:
            raise
        except Exception as exc:
            logger.warning(
                "Extractor error | family=%s path=%s error=%s", family.value, path.name, exc,
            )
            return ExtractionResult.failed(str(exc) or type(exc).__name__, family)

        logger.info(
            "Extraction | family=%s chars=%d scanned=%s error=%s elapsed_ms=%.0f",
            family.value, len(result.text), result.is_scanned, result.error,
            (time.monotonic() - t0) * 1000,
        )
        return result
