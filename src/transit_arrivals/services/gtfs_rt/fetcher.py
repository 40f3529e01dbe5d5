"""GTFS-RT feed download with conditional requests and retry."""

from __future__ import annotations

import asyncio
import hashlib

import httpx

from transit_arrivals.logging import bound_context, get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 15
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0

PROTOBUF_ACCEPT = "application/x-protobuf, application/octet-stream;q=0.9, */*;q=0.5"

# Agencies answer outages with a 200 status page instead of a protobuf body
_ERROR_PAGE_TYPES = ("text/", "application/json", "application/problem+json")


class FeedFetchError(Exception):
    """Raised when a GTFS-RT feed fetch fails after all retries."""


class FeedNotModifiedError(Exception):
    """Raised when the server confirms the feed is unchanged since the last fetch."""


def _media_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";", 1)[0].strip().lower()


class GtfsRtFetcher:
    """Downloads trip-update and vehicle-position feeds.

    ETag and Last-Modified validators are kept per URL, so a feed the server
    has not regenerated since the previous cycle costs a 304 rather than a
    full body. Callers that lost the state built from the last body must
    call `forget_validators` to force a full download.
    """

    def __init__(
        self,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._validators: dict[str, dict[str, str]] = {}

    def forget_validators(self, url: str) -> None:
        self._validators.pop(url, None)

    def request_headers(self, url: str) -> dict[str, str]:
        headers = {"Accept": PROTOBUF_ACCEPT}
        cached = self._validators.get(url, {})
        if "etag" in cached:
            headers["If-None-Match"] = cached["etag"]
        if "last-modified" in cached:
            headers["If-Modified-Since"] = cached["last-modified"]
        return headers

    def _remember_validators(self, url: str, response: httpx.Response) -> None:
        validators = {
            name: response.headers[name]
            for name in ("etag", "last-modified")
            if name in response.headers
        }
        if validators:
            self._validators[url] = validators
        else:
            self.forget_validators(url)

    @staticmethod
    def _feed_body(response: httpx.Response, feed_type: str) -> bytes:
        media_type = _media_type(response)
        if media_type.startswith(_ERROR_PAGE_TYPES):
            msg = f"{feed_type} endpoint returned {media_type} instead of protobuf"
            raise FeedFetchError(msg)
        if not response.content:
            msg = f"Empty {feed_type} response body"
            raise FeedFetchError(msg)
        return response.content

    async def _download(self, url: str, feed_type: str) -> bytes:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_sec), follow_redirects=True
        ) as client:
            response = await client.get(url, headers=self.request_headers(url))

        if response.status_code == httpx.codes.NOT_MODIFIED:
            msg = f"{feed_type} unchanged since last fetch"
            raise FeedNotModifiedError(msg)
        response.raise_for_status()

        data = self._feed_body(response, feed_type)
        self._remember_validators(url, response)
        return data

    async def fetch(self, url: str, feed_type: str, poll_id: str) -> tuple[bytes, str]:
        """Download one feed for a refresh cycle.

        Returns:
            Tuple of (protobuf_bytes, sha256_hex_digest).

        Raises:
            FeedNotModifiedError: On a 304 answer to a conditional request.
            FeedFetchError: When every attempt failed or produced no protobuf body.
        """
        with bound_context(feed_type=feed_type, poll_id=poll_id):
            errors: list[str] = []
            last_error: Exception | None = None
            for attempt in range(1, self.max_retries + 1):
                try:
                    data = await self._download(url, feed_type)
                except (httpx.HTTPStatusError, httpx.RequestError, FeedFetchError) as exc:
                    errors.append(str(exc))
                    last_error = exc
                    if attempt == self.max_retries:
                        break
                    delay = self.backoff_base**attempt
                    logger.warning(
                        "GTFS-RT fetch failed, retrying",
                        attempt=attempt,
                        delay_sec=delay,
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                    continue

                feed_hash = hashlib.sha256(data).hexdigest()
                logger.info(
                    "GTFS-RT feed downloaded",
                    size_bytes=len(data),
                    feed_hash=feed_hash[:12],
                    attempt=attempt,
                )
                return data, feed_hash

            msg = f"Failed to fetch {feed_type} after {self.max_retries} attempts"
            logger.error(msg, errors=errors)
            raise FeedFetchError(msg) from last_error
