"""GTFS static feed fetcher with retry and validation."""

from __future__ import annotations

import asyncio
import hashlib
import io
import zipfile
from pathlib import Path

import httpx

from transit_arrivals.logging import get_logger

logger = get_logger(__name__)

# Default settings
DEFAULT_TIMEOUT_SEC = 120
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0

# ZIP magic bytes
ZIP_MAGIC = b"PK\x03\x04"


class FetchError(Exception):
    """Raised when the static feed cannot be obtained."""


class InvalidZipError(Exception):
    """Raised when fetched content is not a valid ZIP."""


class GtfsStaticFetcher:
    """Obtains the static GTFS ZIP from a local path or a remote URL."""

    def __init__(
        self,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

    async def fetch(
        self, path: str | Path | None = None, url: str | None = None
    ) -> tuple[bytes, str]:
        """Fetch from ``path`` when given, otherwise from ``url``.

        Returns:
            Tuple of (zip_bytes, sha256_hex_digest).

        Raises:
            FetchError: If neither source is given or the download fails.
        """
        if path:
            return self.fetch_local(path)
        if url:
            return await self.fetch_remote(url)
        raise FetchError("No static GTFS source configured (path or URL)")

    async def fetch_remote(self, url: str) -> tuple[bytes, str]:
        """Download a GTFS ZIP with retry + exponential backoff.

        Raises:
            FetchError: If all retries are exhausted.
            InvalidZipError: If the body is not a ZIP archive.
        """
        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    "Downloading static GTFS feed",
                    url=url,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_sec),
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url)
                    response.raise_for_status()
                    data = response.content

            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_error = exc
                if attempt < self.max_retries - 1:
                    delay = self.backoff_base ** (attempt + 1)
                    logger.warning(
                        "Static feed download failed, retrying",
                        attempt=attempt + 1,
                        delay_sec=delay,
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                continue

            return self._checked(data, source=url)

        msg = f"Failed to download static GTFS feed after {self.max_retries} attempts"
        raise FetchError(msg) from last_error

    def fetch_local(self, path: str | Path) -> tuple[bytes, str]:
        """Read a GTFS ZIP from the local filesystem.

        Raises:
            FetchError: If the path does not exist.
            InvalidZipError: If the file is not a ZIP archive.
        """
        path = Path(path)
        if not path.is_file():
            msg = f"Local GTFS file not found: {path}"
            raise FetchError(msg)
        return self._checked(path.read_bytes(), source=str(path))

    def _checked(self, data: bytes, source: str) -> tuple[bytes, str]:
        self._validate_zip(data)
        feed_hash = hashlib.sha256(data).hexdigest()
        logger.info(
            "Static GTFS feed obtained",
            source=source,
            size_bytes=len(data),
            feed_hash=feed_hash[:12],
        )
        return data, feed_hash

    @staticmethod
    def _validate_zip(data: bytes) -> None:
        """Validate that data is a readable ZIP archive."""
        if data[:4] != ZIP_MAGIC or not zipfile.is_zipfile(io.BytesIO(data)):
            msg = "Static GTFS content is not a valid ZIP file"
            raise InvalidZipError(msg)
