"""
Document Processing Package
════════════════════════════

File on disk → plain text, ready for summarization.

Modules
───────
  extractors.py  Format families and one extractor per family (PDF, DOCX, image, text)
  ocr.py         OCR backends for raster images (Tesseract → Textract)
  extractor.py   Router that selects the extractor and normalizes the result

Design principles
─────────────────
  • Every component is stateless and dependency-injected.
  • Blocking parsers and OCR run in the thread executor, never on the event loop.
  • Every step emits structured log lines.
"""

from docsummary.processing.extractor import ExtractionRouter
from docsummary.processing.extractors import ExtractionResult, FormatFamily

__all__ = [
    "ExtractionResult",
    "ExtractionRouter",
    "FormatFamily",
]
