"""
OCR Backends  —  Text Recognition for Raster Images
═══════════════════════════════════════════════════

Design: Strategy + Factory
──────────────────────────
Image documents (png, jpg, bmp, webp, …) have no text layer, so the
image extractor hands them to one of two interchangeable backends:

  Backend 1: Tesseract (pytesseract + Pillow)
    - Runs in-process against the system tesseract binary
    - Zero per-call cost, data never leaves the host
    - Language packs selected with OCR_LANGUAGE (default "eng")

  Backend 2: AWS Textract
    - Managed OCR via DetectDocumentText (synchronous API)
    - Higher accuracy on forms and handwriting, pay-per-page
    - Requires textract:DetectDocumentText on the worker role

Selection: OCR_BACKEND=tesseract | textract  (see build_ocr_backend()).

Failure contract
────────────────
Both backends run their blocking call in the default thread executor,
bounded by OCR_TIMEOUT_SECONDS. Any engine error or timeout is logged
with full detail and re-raised as OcrFailedError carrying a short,
engine-neutral message. Full-document OCR of scanned PDFs is not
attempted; those are classified as scanned by the PDF extractor.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

from docsummary.core.config import Settings
from docsummary.core.errors import OcrFailedError

logger = logging.getLogger(__name__)

# Message surfaced to callers for every OCR engine failure
OCR_FAILED_MESSAGE = "OCR failed for image"


# ---------------------------------------------------------------------------
# Abstract strategy
# ---------------------------------------------------------------------------

class OcrBackend(ABC):
    """
    Abstract base for OCR engines.

    All implementations:
      - Accept a local image path
      - Return the recognized text, stripped
      - Raise OcrFailedError (never engine-specific exceptions)
      - Are safe for concurrent use (no shared mutable state)
    """

    def __init__(self, timeout_seconds: float = 120.0) -> None:
        self._timeout = timeout_seconds

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Unique name for logging."""

    @abstractmethod
    def _recognize_sync(self, image_path: Path, language: str) -> str:
        """Blocking recognition — runs in thread executor."""

    async def recognize(self, image_path: Path, language: str = "eng") -> str:
        loop = asyncio.get_running_loop()
        t0 = time.monotonic()

        try:
            text = await asyncio.wait_for(
                loop.run_in_executor(None, self._recognize_sync, image_path, language),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("%s OCR timed out after %.0fs", self.backend_name, self._timeout)
            raise OcrFailedError(OCR_FAILED_MESSAGE) from exc
        except Exception as exc:
            logger.error("%s OCR failed: %s", self.backend_name, exc, exc_info=True)
            raise OcrFailedError(OCR_FAILED_MESSAGE) from exc

        text = (text or "").strip()
        logger.info(
            "OCR | backend=%s chars=%d elapsed_ms=%.0f",
            self.backend_name, len(text), (time.monotonic() - t0) * 1000,
        )
        return text


# ---------------------------------------------------------------------------
# Backend 1: Tesseract
# ---------------------------------------------------------------------------

class TesseractOcrBackend(OcrBackend):
    """Local Tesseract via pytesseract. Requires the tesseract binary on PATH."""

    @property
    def backend_name(self) -> str:
        return "tesseract"

    def _recognize_sync(self, image_path: Path, language: str) -> str:
        import pytesseract
        from PIL import Image

        with Image.open(image_path) as image:
            # Palette / alpha images confuse tesseract's binarization
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            return pytesseract.image_to_string(image, lang=language)


# ---------------------------------------------------------------------------
# Backend 2: AWS Textract
# ---------------------------------------------------------------------------

class TextractOcrBackend(OcrBackend):
    """
    AWS Textract DetectDocumentText on raw image bytes.

    Textract detects language automatically; the `language` argument is
    accepted for interface parity and ignored.
    """

    def __init__(self, region: str = "us-east-1", timeout_seconds: float = 120.0) -> None:
        super().__init__(timeout_seconds=timeout_seconds)
        self._region = region

    @property
    def backend_name(self) -> str:
        return "textract"

    def _recognize_sync(self, image_path: Path, language: str) -> str:
        import boto3

        client = boto3.client("textract", region_name=self._region)
        response = client.detect_document_text(
            Document={"Bytes": image_path.read_bytes()}
        )

        lines = [
            block.get("Text", "")
            for block in response.get("Blocks", [])
            if block.get("BlockType") == "LINE"
        ]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_ocr_backend(settings: Settings) -> OcrBackend:
    backend = settings.ocr_backend.lower()

    if backend == "tesseract":
        return TesseractOcrBackend(timeout_seconds=settings.ocr_timeout_seconds)

    if backend == "textract":
        return TextractOcrBackend(
            region=settings.aws_region,
            timeout_seconds=settings.ocr_timeout_seconds,
        )

    raise ValueError(
        f"Unknown OCR backend: '{backend}'. "
        f"Valid options: 'tesseract', 'textract'"
    )
