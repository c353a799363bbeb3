"""
HTTP gateway blob store.

Talks to one or more blob gateways that expose:

    PUT {base}/{locator}   body = blob bytes   -> 2xx
    GET {base}/{locator}                       -> 200 with blob bytes, 404 if absent

Gateways are tried in order. put() stops at the first gateway that accepts
the blob; get() stops at the first gateway that returns it. Fetched bytes
are hashed and compared with the locator, so an untrusted gateway cannot
substitute content.

Retries beyond walking the gateway list are the caller's concern.
"""

import logging

import httpx

from timecapsule.blobstore.base import (
    DEFAULT_MAX_BLOB_BYTES,
    BlobStore,
    locator_for,
    validate_locator,
    verify_blob,
)
from timecapsule.errors import BlobNotFoundError, BlobStoreError

logger = logging.getLogger(__name__)


class HttpBlobStore(BlobStore):
    """
    Blob store over an ordered list of HTTP gateways.

    Usage:
        store = HttpBlobStore(["https://blobs.example.com"], timeout_seconds=10)
        locator = store.put(data)
        data = store.get(locator)
        store.close()

    Attributes:
        gateways: Base URLs without trailing slash
        timeout_seconds: Per-request timeout
    """

    def __init__(
        self,
        gateways: list[str],
        timeout_seconds: float = 30.0,
        max_blob_bytes: int = DEFAULT_MAX_BLOB_BYTES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            gateways: Base URLs, tried in order
            timeout_seconds: Request timeout in seconds
            max_blob_bytes: Largest blob accepted in either direction
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        if not gateways:
            raise ValueError("At least one gateway is required")
        self.gateways = [g.rstrip("/") for g in gateways]
        self.timeout_seconds = timeout_seconds
        self.max_blob_bytes = max_blob_bytes
        self._client = httpx.Client(
            timeout=timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> "HttpBlobStore":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def put(self, data: bytes) -> str:
        self._check_size(len(data))
        locator = locator_for(data)
        failures: list[str] = []

        for base in self.gateways:
            url = f"{base}/{locator}"
            try:
                response = self._client.put(
                    url,
                    content=data,
                    headers={"Content-Type": "application/octet-stream"},
                )
            except httpx.TimeoutException:
                failures.append(f"{base}: timed out after {self.timeout_seconds}s")
                continue
            except httpx.RequestError as e:
                failures.append(f"{base}: {e}")
                continue

            if response.is_success:
                logger.debug("Stored blob %s at %s", locator[:12], base)
                return locator
            failures.append(f"{base}: HTTP {response.status_code}")

        logger.warning("All gateways rejected blob %s", locator[:12])
        raise BlobStoreError(
            locator=locator,
            underlying_error="all gateways failed: " + "; ".join(failures),
        )

    def get(self, locator: str) -> bytes:
        self._check_locator(locator)
        failures: list[str] = []
        missing = 0

        for base in self.gateways:
            url = f"{base}/{locator}"
            try:
                data = self._fetch(url, locator)
            except httpx.TimeoutException:
                failures.append(f"{base}: timed out after {self.timeout_seconds}s")
                continue
            except httpx.RequestError as e:
                failures.append(f"{base}: {e}")
                continue
            except BlobNotFoundError:
                missing += 1
                continue
            except BlobStoreError as e:
                failures.append(f"{base}: {e.underlying_error}")
                continue
            return data

        if missing == len(self.gateways):
            raise BlobNotFoundError(locator=locator)
        raise BlobStoreError(
            locator=locator,
            underlying_error="all gateways failed: " + "; ".join(failures),
        )

    def _fetch(self, url: str, locator: str) -> bytes:
        with self._client.stream("GET", url) as response:
            if response.status_code == 404:
                raise BlobNotFoundError(locator=locator)
            if not response.is_success:
                raise BlobStoreError(
                    locator=locator,
                    underlying_error=f"HTTP {response.status_code}",
                )

            content_length = response.headers.get("content-length")
            if content_length and content_length.isdigit():
                self._check_size(int(content_length), locator)

            chunks = []
            total = 0
            for chunk in response.iter_bytes(chunk_size=8192):
                total += len(chunk)
                self._check_size(total, locator)
                chunks.append(chunk)

        return self._verify(locator, b"".join(chunks))

    def _check_locator(self, locator: str) -> str:
        return validate_locator(locator)

    def _verify(self, locator: str, data: bytes) -> bytes:
        return verify_blob(locator, data)
