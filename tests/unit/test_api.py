"""Endpoint tests for src/main.py via httpx AsyncClient."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.scan.quality import MSG_HOLD_STEADY, MSG_READY
from src.storage.client import StorageError, UploadedDocument
from tests.frames import document_bgr, encode

_SHARP = encode(document_bgr())
_BLURRY = encode(document_bgr(textured=False, blur_sigma=8.0))


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _mock_storage(upload: AsyncMock) -> MagicMock:
    """Patchable stand-in for DocumentStorageClient used as ``async with``."""
    storage = MagicMock()
    storage.upload_document = upload
    cls = MagicMock()
    cls.return_value.__aenter__.return_value = storage
    return cls


# ---------------------------------------------------------------------------
# /health
# ---------------------------------------------------------------------------


async def test_health():
    async with _client() as c:
        response = await c.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": "0.1.0"}


# ---------------------------------------------------------------------------
# /scan/evaluate
# ---------------------------------------------------------------------------


async def test_evaluate_sharp_document():
    async with _client() as c:
        response = await c.post("/scan/evaluate", content=_SHARP)
    assert response.status_code == 200
    data = response.json()
    assert data["can_capture"] is True
    assert data["quality_message"] == MSG_READY
    assert len(data["document_corners"]) == 4


async def test_evaluate_blurry_document():
    async with _client() as c:
        response = await c.post("/scan/evaluate", content=_BLURRY)
    data = response.json()
    assert data["can_capture"] is False
    assert data["is_sharp"] is False
    assert data["quality_message"] == MSG_HOLD_STEADY


async def test_evaluate_garbage_is_400():
    async with _client() as c:
        response = await c.post("/scan/evaluate", content=b"definitely not a png")
    assert response.status_code == 400


async def test_evaluate_tiny_image_is_400():
    async with _client() as c:
        response = await c.post(
            "/scan/evaluate", content=encode(document_bgr(h=2, w=2, box=(0, 0, 1, 1)))
        )
    assert response.status_code == 400
    assert "at least 3" in response.json()["detail"]


async def test_evaluate_oversize_body_is_413(monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "16")
    from src.config import get_settings

    get_settings.cache_clear()
    async with _client() as c:
        response = await c.post("/scan/evaluate", content=_SHARP)
    assert response.status_code == 413


async def test_evaluate_oversize_content_length_rejected_before_reading(monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "16")
    from src.config import get_settings

    get_settings.cache_clear()
    with patch("starlette.requests.Request.body", new_callable=AsyncMock) as body:
        async with _client() as c:
            response = await c.post("/scan/evaluate", content=_SHARP)
    assert response.status_code == 413
    body.assert_not_awaited()


async def test_evaluate_oversize_chunked_body_is_413(monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "16")
    from src.config import get_settings

    get_settings.cache_clear()

    async def chunks():
        yield _SHARP[:8]
        yield _SHARP[8:]

    async with _client() as c:
        response = await c.post("/scan/evaluate", content=chunks())
    assert response.status_code == 413


# ---------------------------------------------------------------------------
# /documents/{token}/{document_type}
# ---------------------------------------------------------------------------


async def test_upload_sharp_document_is_stored():
    upload = AsyncMock(
        return_value=UploadedDocument(
            document_type="Passport",
            path="tok/Passport/1_Passport.jpg",
            size=1234,
            content_type="image/jpeg",
        )
    )
    with patch("src.main.DocumentStorageClient", _mock_storage(upload)) as cls:
        async with _client() as c:
            response = await c.post("/documents/tok/Passport", content=_SHARP)

    assert response.status_code == 201
    assert response.json()["path"] == "tok/Passport/1_Passport.jpg"
    cls.assert_called_once_with(
        "https://storage.test",
        "test-service-key",
        bucket="applicant-documents",
        max_upload_bytes=10 * 1024 * 1024,
    )
    token, doc_type, still = upload.call_args.args
    assert (token, doc_type) == ("tok", "Passport")
    assert still.data[:3] == b"\xff\xd8\xff"


async def test_upload_blurry_document_is_refused():
    upload = AsyncMock()
    with patch("src.main.DocumentStorageClient", _mock_storage(upload)):
        async with _client() as c:
            response = await c.post("/documents/tok/Passport", content=_BLURRY)

    assert response.status_code == 422
    assert response.json()["detail"] == MSG_HOLD_STEADY
    upload.assert_not_called()


async def test_upload_blurry_document_with_force():
    upload = AsyncMock(
        return_value=UploadedDocument("Passport", "tok/Passport/1_Passport.jpg", 10, "image/jpeg")
    )
    with patch("src.main.DocumentStorageClient", _mock_storage(upload)):
        async with _client() as c:
            response = await c.post(
                "/documents/tok/Passport", params={"force": "true"}, content=_BLURRY
            )

    assert response.status_code == 201
    assert response.json()["quality"]["can_capture"] is False
    upload.assert_awaited_once()


async def test_upload_unknown_document_type_is_400():
    async with _client() as c:
        response = await c.post("/documents/tok/Library Card", content=_SHARP)
    assert response.status_code == 400


async def test_upload_storage_rejection_is_502():
    upload = AsyncMock(side_effect=StorageError("Storage error 409: exists", 409))
    with patch("src.main.DocumentStorageClient", _mock_storage(upload)):
        async with _client() as c:
            response = await c.post("/documents/tok/Passport", content=_SHARP)
    assert response.status_code == 502
    assert "409" in response.json()["detail"]


async def test_upload_storage_outage_is_502():
    upload = AsyncMock(side_effect=httpx.ConnectError("down"))
    with patch("src.main.DocumentStorageClient", _mock_storage(upload)):
        async with _client() as c:
            response = await c.post("/documents/tok/Passport", content=_SHARP)
    assert response.status_code == 502
    assert response.json()["detail"] == "Storage unavailable"
