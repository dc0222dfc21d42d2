"""
Content Acquirer — storage reference → local temp file
═══════════════════════════════════════════════════════

Turns a document's storage reference into a readable local file for the
extractors, and guarantees the file is removed afterwards.

Reference kinds:

  https://… / http://…   streamed with httpx into the temp file
  s3://bucket/key        streamed with aioboto3 (S3ObjectReader)
  anything else          legacy local path, resolved against
                         LOCAL_STORAGE_ROOT and copied into the temp file

Temp file naming:
    <TEMP_DIR>/docsummary_<document_id>_<time_ns><ext>

The extension is what the extraction router keys on, resolved as:
reference path suffix → original filename suffix → declared MIME type
→ ".tmp".

Usage:
    async with acquirer.acquire(record) as path:
        result = await router.extract(path, record.declared_mime_type)
    # path no longer exists here, whatever happened inside the block

No retries happen here. Retry policy belongs to the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import shutil
import time
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath
from typing import AsyncIterator
from urllib.parse import unquote, urlparse

import httpx

from docsummary.core.config import Settings
from docsummary.core.errors import FetchFailedError, SourceNotFoundError
from docsummary.storage.s3 import S3Location, S3ObjectReader
from docsummary.store.base import DocumentRecord

logger = logging.getLogger(__name__)

_REMOTE_SCHEMES = ("http://", "https://")
_S3_SCHEME      = "s3://"
_FALLBACK_EXT   = ".tmp"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def is_remote_reference(reference: str) -> bool:
    return reference.lower().startswith(_REMOTE_SCHEMES)


def _suffix_of(value: str | None) -> str:
    if not value:
        return ""
    path = unquote(urlparse(value).path) if "://" in value else value
    return PurePosixPath(path).suffix.lower()


def resolve_extension(
    reference:          str,
    filename:           str | None = None,
    declared_mime_type: str | None = None,
) -> str:
    """Pick the temp-file extension used for extractor routing."""
    ext = _suffix_of(reference) or _suffix_of(filename)
    if ext:
        return ext
    if declared_mime_type:
        guessed = mimetypes.guess_extension(declared_mime_type.split(";")[0].strip())
        if guessed:
            return guessed
    return _FALLBACK_EXT


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Temp cleanup failed | path=%s error=%s", path, exc)


# ---------------------------------------------------------------------------
# Acquirer
# ---------------------------------------------------------------------------

class ContentAcquirer:
    """
    Constructor args:
        settings   : application Settings (temp dir, storage root, timeouts)
        s3_reader  : optional S3ObjectReader override
        transport  : optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        settings:  Settings,
        s3_reader: S3ObjectReader | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._temp_dir      = Path(settings.temp_dir)
        self._local_root    = Path(settings.local_storage_root).resolve()
        self._fetch_timeout = settings.fetch_timeout_seconds
        self._s3            = s3_reader or S3ObjectReader(region=settings.aws_region)
        self._transport     = transport

    def temp_path_for(self, record: DocumentRecord) -> Path:
        ext = resolve_extension(
            record.storage_reference, record.filename, record.declared_mime_type,
        )
        return self._temp_dir / f"docsummary_{record.id}_{time.time_ns()}{ext}"

    @asynccontextmanager
    async def acquire(self, record: DocumentRecord) -> AsyncIterator[Path]:
        """
        Yield a local copy of the document's bytes; delete it on exit.

        Raises:
            SourceNotFoundError: legacy local file (or S3 key) missing.
            FetchFailedError:    transfer error or timeout.
        """
        reference = record.storage_reference
        temp_path = self.temp_path_for(record)
        t0 = time.monotonic()

        try:
            if is_remote_reference(reference):
                await self._fetch_http(reference, temp_path)
            elif reference.lower().startswith(_S3_SCHEME):
                await self._fetch_s3(reference, temp_path)
            else:
                await self._copy_local(reference, temp_path)

            logger.info(
                "Acquired | doc=%s path=%s bytes=%d elapsed_ms=%.0f",
                record.id, temp_path.name, temp_path.stat().st_size,
                (time.monotonic() - t0) * 1000,
            )
            yield temp_path
        finally:
            _unlink_quietly(temp_path)

    # ------------------------------------------------------------------
    # Transfer strategies
    # ------------------------------------------------------------------

    async def _fetch_http(self, url: str, destination: Path) -> None:
        try:
            await asyncio.wait_for(
                self._stream_http(url, destination),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FetchFailedError(
                f"Download timed out after {self._fetch_timeout:.0f}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise FetchFailedError(
                f"Download failed: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchFailedError(f"Download failed: {exc}") from exc
        except OSError as exc:
            raise FetchFailedError(f"Download failed: {exc}") from exc

    async def _stream_http(self, url: str, destination: Path) -> None:
        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=True,
            timeout=self._fetch_timeout,
        ) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(destination, "wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)

    async def _fetch_s3(self, reference: str, destination: Path) -> None:
        try:
            location = S3Location.parse(reference)
        except ValueError as exc:
            raise FetchFailedError(str(exc)) from exc
        try:
            await asyncio.wait_for(
                self._s3.download(location, destination),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FetchFailedError(
                f"Download timed out after {self._fetch_timeout:.0f}s"
            ) from exc

    async def _copy_local(self, reference: str, destination: Path) -> None:
        relative = reference.removeprefix("/")
        source = (self._local_root / relative).resolve()

        if not source.is_relative_to(self._local_root):
            logger.warning("Local reference escapes storage root | ref=%s", reference)
            raise SourceNotFoundError("Local file not found")
        if not source.is_file():
            raise SourceNotFoundError("Local file not found")

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, shutil.copyfile, source, destination)
        except OSError as exc:
            raise FetchFailedError(f"Local copy failed: {exc}") from exc
