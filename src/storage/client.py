"""Object-storage client for uploading captured documents.

Uploads encoded stills to ``POST /storage/v1/object/{bucket}/{path}`` on a
Supabase-compatible storage API.

Authentication: ``Authorization: Bearer`` plus ``apikey`` header.
Retry policy: up to 3 attempts with exponential back-off (1 s → 2 s) on 5xx,
429, timeouts and connect errors.
Non-retryable errors: every other 4xx, e.g. 409 (object exists), 413 (too large).
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any

import httpx

from src.scan.scanner import CapturedImage

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = (
    "Passport",
    "National ID Card",
    "Driving License",
    "Proof of Address",
    "Birth Certificate",
    "Right to Work Document",
    "DBS Certificate",
    "Qualification Certificate",
    "Other",
)

DEFAULT_BUCKET = "applicant-documents"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_OBJECT_PATH = "/storage/v1/object"
_RETRYABLE_CLIENT_ERRORS = (429,)

_MAX_ATTEMPTS = 3
_RETRY_DELAYS = (1.0, 2.0)  # seconds between attempts 1→2 and 2→3


@dataclass
class UploadedDocument:
    """A document stored in the bucket."""

    document_type: str
    path: str  # object path inside the bucket
    size: int
    content_type: str


class StorageError(Exception):
    """Raised on non-retryable storage API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def build_document_path(token: str, document_type: str, now_ms: int) -> str:
    """Return ``{token}/{document_type}/{now_ms}_{Document_Type}.jpg``."""
    slug = re.sub(r"\s+", "_", document_type)
    file_name = f"{now_ms}_{slug}.jpg"
    return f"{token}/{document_type}/{file_name}"


class DocumentStorageClient:
    """Async HTTP client for the document bucket.

    Must be used as an async context manager::

        async with DocumentStorageClient(url, api_key) as storage:
            uploaded = await storage.upload_document(token, "Passport", still)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str = DEFAULT_BUCKET,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._bucket = bucket
        self._max_upload_bytes = max_upload_bytes
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "DocumentStorageClient":
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "apikey": self._api_key,
            },
            timeout=30.0,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def upload_document(
        self,
        token: str,
        document_type: str,
        image: CapturedImage,
        now_ms: int | None = None,
    ) -> UploadedDocument:
        """Upload a captured still for the applicant identified by ``token``.

        Args:
            token: Applicant's document-upload token; first path segment.
            document_type: Human-readable type, e.g. ``"Passport"``.
            image: Encoded still from the scanner.
            now_ms: Timestamp for the file name; defaults to the current time.

        Returns:
            UploadedDocument with the object path inside the bucket.

        Raises:
            ValueError: If the image is empty or exceeds ``max_upload_bytes``.
            StorageError: Non-retryable API error.
            httpx.HTTPStatusError: Unexpected HTTP error after all retries.
        """
        size = len(image.data)
        if size == 0:
            raise ValueError("Image data is empty")
        if size > self._max_upload_bytes:
            raise ValueError(
                f"Image is {size} bytes; maximum is {self._max_upload_bytes}"
            )

        if now_ms is None:
            now_ms = int(time.time() * 1000)
        path = build_document_path(token, document_type, now_ms)
        url = f"{_OBJECT_PATH}/{self._bucket}/{path}"

        last_exc: Exception | None = None

        for attempt in range(_MAX_ATTEMPTS):
            try:
                await self._post(url, image.data, image.content_type)
                logger.info(
                    "Uploaded document: type=%s path=%s size=%d",
                    document_type,
                    path,
                    size,
                )
                return UploadedDocument(
                    document_type=document_type,
                    path=path,
                    size=size,
                    content_type=image.content_type,
                )
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if not _is_retryable(status):
                    body = _safe_json(exc.response)
                    raise StorageError(
                        f"Storage error {status}: {body.get('message', str(exc))}",
                        status_code=status,
                    ) from exc
                last_exc = exc
                logger.warning(
                    "Storage error %d (attempt %d/%d)",
                    status,
                    attempt + 1,
                    _MAX_ATTEMPTS,
                )
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_exc = exc
                logger.warning(
                    "Storage connection error (attempt %d/%d): %s",
                    attempt + 1,
                    _MAX_ATTEMPTS,
                    exc,
                )

            if attempt < _MAX_ATTEMPTS - 1:
                await asyncio.sleep(_RETRY_DELAYS[attempt])

        assert last_exc is not None
        raise last_exc

    async def _post(self, url: str, data: bytes, content_type: str) -> dict:
        assert self._http is not None, "Use DocumentStorageClient as async context manager"
        response = await self._http.post(
            url,
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        response.raise_for_status()
        return _safe_json(response)


def _is_retryable(status: int) -> bool:
    return status >= 500 or status in _RETRYABLE_CLIENT_ERRORS


def _safe_json(response: httpx.Response) -> dict:
    try:
        return response.json()
    except Exception:
        return {}
