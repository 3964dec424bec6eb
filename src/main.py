import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from src.config import get_settings
from src.scan.frame import Frame, InvalidFrameError
from src.scan.quality import ScanThresholds
from src.scan.scanner import DocumentScanner
from src.storage.client import DOCUMENT_TYPES, DocumentStorageClient, StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO)
    )
    logger.info(
        "Document scan service ready (sharpness>%.0f, fill>%.0f%%)",
        settings.sharpness_threshold,
        settings.min_fill_percentage,
    )
    yield


app = FastAPI(
    title="Document Scan Quality Service",
    description=(
        "Evaluates document photographs for sharpness and framing, and "
        "uploads accepted stills to applicant document storage."
    ),
    version="0.1.0",
    lifespan=lifespan,
)


def _scanner() -> DocumentScanner:
    settings = get_settings()
    return DocumentScanner(
        ScanThresholds.from_settings(settings),
        jpeg_quality=settings.jpeg_quality,
    )


def _reject_oversize(max_bytes: int) -> HTTPException:
    return HTTPException(status_code=413, detail=f"Image exceeds {max_bytes} bytes")


async def _read_frame(request: Request) -> Frame:
    max_bytes = get_settings().max_upload_bytes
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > max_bytes:
        raise _reject_oversize(max_bytes)

    # Chunked bodies carry no Content-Length
    body = await request.body()
    if len(body) > max_bytes:
        raise _reject_oversize(max_bytes)
    try:
        return Frame.decode(body)
    except InvalidFrameError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/scan/evaluate")
async def evaluate(request: Request) -> dict:
    """Score an encoded image (request body) for sharpness and framing."""
    frame = await _read_frame(request)
    return _scanner().evaluate(frame).to_dict()


@app.post("/documents/{token}/{document_type}")
async def upload_document(
    token: str, document_type: str, request: Request, force: bool = False
) -> JSONResponse:
    """Evaluate an encoded still and store it for the applicant.

    Stills that would not pass the live capture gate are refused with 422
    unless ``force`` is set (the manual file-upload path).
    """
    if document_type not in DOCUMENT_TYPES:
        raise HTTPException(
            status_code=400, detail=f"Unknown document type: {document_type}"
        )

    frame = await _read_frame(request)
    scanner = _scanner()
    quality = scanner.evaluate(frame)
    if not quality.can_capture and not force:
        return JSONResponse(
            {"detail": quality.quality_message, "quality": quality.to_dict()},
            status_code=422,
        )

    still = scanner.capture(frame)
    settings = get_settings()
    try:
        async with DocumentStorageClient(
            settings.storage_url,
            settings.storage_api_key,
            bucket=settings.storage_bucket,
            max_upload_bytes=settings.max_upload_bytes,
        ) as storage:
            uploaded = await storage.upload_document(token, document_type, still)
    except ValueError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except StorageError as exc:
        logger.error("Upload rejected for token %s: %s", token, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except httpx.HTTPError as exc:
        logger.error("Upload failed for token %s: %s", token, exc)
        raise HTTPException(status_code=502, detail="Storage unavailable") from exc

    return JSONResponse(
        {
            "document_type": uploaded.document_type,
            "path": uploaded.path,
            "size": uploaded.size,
            "quality": quality.to_dict(),
        },
        status_code=201,
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": app.version}
