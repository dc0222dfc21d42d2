"""
S3 Object Reader

Streams an object from S3 to a local file for the content acquirer.

Reference format:
    s3://<bucket>/<key>

Credentials come from the default provider chain: ECS task role / IRSA
in production, AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY in local dev.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from docsummary.core.errors import FetchFailedError, SourceNotFoundError

logger = logging.getLogger(__name__)

# Read size for the streaming body
_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class S3Location:
    bucket: str
    key:    str

    @classmethod
    def parse(cls, reference: str) -> "S3Location":
        parsed = urlparse(reference)
        if parsed.scheme != "s3" or not parsed.netloc or not parsed.path.strip("/"):
            raise ValueError(f"Not an s3:// reference: {reference!r}")
        return cls(bucket=parsed.netloc, key=parsed.path.lstrip("/"))


class S3ObjectReader:
    """Async S3 downloads. One aioboto3 session per reader."""

    def __init__(self, region: str) -> None:
        self._region  = region
        self._session = aioboto3.Session()

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region)

    async def download(self, location: S3Location, destination: Path) -> int:
        """
        Stream the object into `destination`. Returns bytes written.

        Raises:
            SourceNotFoundError: NoSuchKey / 404.
            FetchFailedError:    any other S3 or transport error.
        """
        written = 0
        async with self._client() as s3:
            try:
                resp = await s3.get_object(Bucket=location.bucket, Key=location.key)
                body = resp["Body"]
                with open(destination, "wb") as fh:
                    while chunk := await body.read(_CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    raise SourceNotFoundError(
                        f"Object not found: s3://{location.bucket}/{location.key}"
                    ) from exc
                raise FetchFailedError(f"S3 download error: {code}") from exc
            except BotoCoreError as exc:
                raise FetchFailedError(f"S3 download error: {exc}") from exc

        logger.info(
            "S3 download ok | bucket=%s key=%s size=%d",
            location.bucket, location.key, written,
        )
        return written
