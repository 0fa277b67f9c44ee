"""API routes for scanning documents and reading the session state.

Endpoints
---------
POST /v1/scan
    Upload a PDF or DOCX document (multipart field ``file``).  The document
    becomes the session's current document, is scanned, and the response
    carries all three presentation views: findings, sanitized text, and the
    highlighted proof text as ordered segments.

    Returns:
        ``200 OK`` with a :class:`~docshield.schemas.scan.ScanResponse`.
        ``413`` if the upload exceeds ``max_upload_bytes``.
        ``415`` if the document is neither PDF nor DOCX.
        ``422`` if the document cannot be parsed.
        ``409`` if a newer upload superseded this scan before it finished.

GET /v1/session
    The current session state (status, progress, result summary, error).

DELETE /v1/session
    Reset the session, dropping the current document and superseding any
    scan in flight.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from docshield.core.document_extractor import UnsupportedFormatError
from docshield.core.highlighter import highlight
from docshield.core.pipeline import PipelineError
from docshield.core.session import ScanSession
from docshield.schemas.scan import (
    ErrorOut,
    ScanResponse,
    ScanResultOut,
    SegmentOut,
    SessionOut,
    ViewsAvailable,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["scan"])


def _get_session(request: Request) -> ScanSession:
    return request.app.state.session  # type: ignore[no-any-return]


_SCAN_ERRORS = {
    status: {"model": ErrorOut} for status in (409, 413, 415, 422)
}


@router.post("/scan", response_model=ScanResponse, responses=_SCAN_ERRORS)
async def scan_document(request: Request, file: UploadFile = File(...)) -> ScanResponse:
    """Scan an uploaded document and return findings, sanitized and highlighted text."""
    session = _get_session(request)
    max_bytes: int = request.app.state.settings.max_upload_bytes

    data = await file.read()
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Upload exceeds {max_bytes} bytes",
        )

    file_name = file.filename or "upload"
    try:
        result = await session.scan(
            data,
            file_name=file_name,
            mime_type=file.content_type,
        )
    except UnsupportedFormatError as exc:
        raise HTTPException(
            status_code=415,
            detail="Unsupported document type; upload a PDF or DOCX file",
        ) from exc
    except PipelineError as exc:
        logger.info("Scan failed for %r at step %s", file_name, exc.step_name)
        raise HTTPException(
            status_code=422,
            detail=f"Could not read {file_name}: {exc.original}",
        ) from exc

    if result is None:
        raise HTTPException(
            status_code=409,
            detail="Scan superseded by a newer upload",
        )

    segments = []
    if not result.is_empty:
        segments = [
            SegmentOut.from_segment(s)
            for s in highlight(result.raw_text, result.issues, session.pipeline.phrases)
        ]

    return ScanResponse(
        result=ScanResultOut.from_result(result),
        raw_text=result.raw_text,
        sanitized_text=result.sanitized_text,
        segments=segments,
        views_available=ViewsAvailable(
            sanitized_text=not result.is_empty,
            highlighted_text=not result.is_empty,
        ),
    )


@router.get("/session", response_model=SessionOut)
async def read_session(request: Request) -> SessionOut:
    """Return the current session state."""
    return SessionOut.from_state(_get_session(request).state)


@router.delete("/session", response_model=SessionOut)
async def reset_session(request: Request) -> SessionOut:
    """Reset the session and return the new (idle) state."""
    session = _get_session(request)
    session.reset()
    return SessionOut.from_state(session.state)
