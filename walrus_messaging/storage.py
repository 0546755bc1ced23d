"""
Walrus storage client - thin wrapper over the publisher/aggregator HTTP API.

Usage:
    from walrus_messaging.storage import WalrusClient

    walrus = WalrusClient(publisher_url, aggregator_url)

    # Upload bytes for one epoch
    stored = walrus.store_blob(b"hello")

    # Read them back once the blob is certified
    data = walrus.wait_for_blob(stored.blob_id)
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import BlobNotAvailableError, BlobNotFoundError, StorageError

logger = logging.getLogger("walrus.storage")


def _create_session(retries=3, backoff_factor=0.3, status_forcelist=(502, 503, 504)):
    """Create a requests session with retry/backoff for resilience."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=["GET", "HEAD", "PUT"],
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


@dataclass
class StoredBlob:
    """Result of a publisher upload."""
    blob_id: str
    size: int
    newly_created: bool
    end_epoch: Optional[int] = None
    object_id: Optional[str] = None
    stored_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_response(cls, data: Dict[str, Any], size: int) -> "StoredBlob":
        """Parse the publisher's `newlyCreated` / `alreadyCertified` JSON."""
        if "newlyCreated" in data:
            blob = data["newlyCreated"].get("blobObject", {})
            return cls(
                blob_id=blob["blobId"],
                size=blob.get("size", size),
                newly_created=True,
                end_epoch=blob.get("storage", {}).get("endEpoch"),
                object_id=blob.get("id"),
            )
        if "alreadyCertified" in data:
            cert = data["alreadyCertified"]
            return cls(
                blob_id=cert["blobId"],
                size=size,
                newly_created=False,
                end_epoch=cert.get("endEpoch"),
            )
        raise StorageError(f"Unexpected publisher response: {data}")


class WalrusClient:
    """Client for a Walrus publisher (writes) and aggregator (reads)."""

    def __init__(
        self,
        publisher_url: str,
        aggregator_url: str,
        epochs: int = 1,
        timeout: float = 30.0
    ):
        self.publisher_url = publisher_url.rstrip("/")
        self.aggregator_url = aggregator_url.rstrip("/")
        self.epochs = epochs
        self.timeout = timeout
        self._session = _create_session()

    @classmethod
    def from_config(cls, config) -> "WalrusClient":
        return cls(
            publisher_url=config.publisher_url,
            aggregator_url=config.aggregator_url,
            epochs=config.epochs,
            timeout=config.timeout,
        )

    def _blob_url(self, blob_id: str) -> str:
        if not blob_id:
            raise ValueError("blob_id must not be empty")
        return f"{self.aggregator_url}/v1/blobs/{blob_id}"

    def store_blob(self, data: bytes, epochs: Optional[int] = None) -> StoredBlob:
        """
        Upload raw bytes to the publisher.

        Args:
            data: Blob content
            epochs: Storage duration in epochs (default: client setting)

        Returns:
            StoredBlob with the blob ID

        Raises:
            StorageError: If the publisher rejects the upload
        """
        if epochs is None:
            epochs = self.epochs
        logger.debug(f"Storing {len(data)} bytes for {epochs} epoch(s)")
        try:
            response = self._session.put(
                f"{self.publisher_url}/v1/blobs",
                params={"epochs": epochs},
                data=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"Store failed: {e}") from e

        if not response.ok:
            raise StorageError(f"Store failed ({response.status_code}): {response.text}")

        try:
            payload = response.json()
        except ValueError:
            raise StorageError(f"Store failed: publisher returned non-JSON body: {response.text[:200]}")

        stored = StoredBlob.from_response(payload, len(data))
        state = "new" if stored.newly_created else "already certified"
        logger.info(f"Stored blob {stored.blob_id} ({stored.size} bytes, {state})")
        return stored

    def read_blob(self, blob_id: str) -> bytes:
        """Download a blob from the aggregator."""
        url = self._blob_url(blob_id)
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageError(f"Read failed: {e}") from e

        if response.status_code == 404:
            raise BlobNotFoundError(f"Blob not found: {blob_id}")
        if not response.ok:
            raise StorageError(f"Read failed ({response.status_code}): {response.text}")
        return response.content

    def _head(self, blob_id: str) -> requests.Response:
        try:
            return self._session.head(self._blob_url(blob_id), timeout=self.timeout)
        except requests.RequestException as e:
            raise StorageError(f"Metadata request failed: {e}") from e

    def blob_exists(self, blob_id: str) -> bool:
        """Check whether the aggregator can serve a blob."""
        response = self._head(blob_id)
        if response.status_code == 404:
            return False
        if not response.ok:
            raise StorageError(f"Metadata request failed ({response.status_code})")
        return True

    def get_blob_metadata(self, blob_id: str) -> Dict[str, Any]:
        """
        Blob metadata from the aggregator's response headers.

        Returns:
            Dict with blob_id, size and whichever of content_type, etag and
            last_modified the aggregator sends.
        """
        response = self._head(blob_id)
        if response.status_code == 404:
            raise BlobNotFoundError(f"Blob not found: {blob_id}")
        if not response.ok:
            raise StorageError(f"Metadata request failed ({response.status_code})")

        headers = response.headers
        metadata = {"blob_id": blob_id}
        if "Content-Length" in headers:
            metadata["size"] = int(headers["Content-Length"])
        for header, key in (
            ("Content-Type", "content_type"),
            ("ETag", "etag"),
            ("Last-Modified", "last_modified"),
        ):
            if header in headers:
                metadata[key] = headers[header]
        return metadata

    def wait_for_blob(self, blob_id: str, max_tries: int = 10, delay: float = 3.0) -> bytes:
        """
        Poll the aggregator until a freshly stored blob is readable.

        Raises:
            BlobNotAvailableError: If every attempt fails
        """
        url = self._blob_url(blob_id)
        for attempt in range(1, max_tries + 1):
            try:
                response = self._session.get(url, timeout=self.timeout)
                if response.ok:
                    return response.content
                logger.debug(f"Blob {blob_id} not ready (attempt {attempt}/{max_tries}): HTTP {response.status_code}")
            except requests.RequestException as e:
                logger.debug(f"Blob {blob_id} not ready (attempt {attempt}/{max_tries}): {e}")
            if attempt < max_tries:
                time.sleep(delay)
        raise BlobNotAvailableError("Blob not available after waiting")
