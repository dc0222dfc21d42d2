"""
Pipeline error taxonomy.

Every failure the summary pipeline can classify carries two attributes:

  retriable   — whether the failure may consume the document's retry
                budget (transient infrastructure) or not (configuration,
                content limitation, missing source)
  error_code  — stable machine-readable code, recorded on the failure
                log line of the run

The orchestrator catches everything at its boundary; anything that is
not a PipelineError is treated as transient.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for classified pipeline failures."""

    retriable: bool = True
    error_code: str = "PIPELINE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Configuration: terminal, surfaced verbatim
# ---------------------------------------------------------------------------

class MissingStorageReferenceError(PipelineError):
    retriable = False
    error_code = "MISSING_STORAGE_REFERENCE"


class SummarizerNotConfiguredError(PipelineError):
    retriable = False
    error_code = "SUMMARIZER_NOT_CONFIGURED"


# ---------------------------------------------------------------------------
# Content limitation: will recur identically on retry
# ---------------------------------------------------------------------------

class ScannedDocumentError(PipelineError):
    retriable = False
    error_code = "SCANNED_DOCUMENT"


class InsufficientInputError(PipelineError):
    retriable = False
    error_code = "INSUFFICIENT_INPUT"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class SourceNotFoundError(PipelineError):
    """The stored file is gone (legacy local path missing, S3 NoSuchKey)."""

    retriable = False
    error_code = "SOURCE_NOT_FOUND"


# ---------------------------------------------------------------------------
# Transient / infrastructure
# ---------------------------------------------------------------------------

class FetchFailedError(PipelineError):
    error_code = "FETCH_FAILED"


class OcrFailedError(PipelineError):
    error_code = "OCR_FAILED"


class UpstreamError(PipelineError):
    """Summarization endpoint transport/API failure or timeout."""

    error_code = "UPSTREAM_ERROR"
