"""API router exposing upload, verification, search, answer and highlight endpoints."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.datastructures import UploadFile

from cortex_construct.cortex_client import DEFAULT_ALPHA, DEFAULT_RECENCY_BIAS
from cortex_construct.errors import (
    ConfigurationError,
    ConstructError,
    PDFExtractionError,
    SessionNotFoundError,
    UpstreamHTTPError,
    UpstreamUnavailableError,
)
from cortex_construct.locator import describe
from cortex_construct.models import Highlight, IndexingStatus
from cortex_construct.services.construct import ConstructService, get_construct_service

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/construct", tags=["construct"])


class UploadPayload(BaseModel):
    file_id: str
    message: str
    success: Optional[bool] = None


class UploadResponse(BaseModel):
    """Response body returned from the upload endpoint."""

    upload: UploadPayload
    pages: list[str]
    session_id: Optional[str] = None


class VerifyRequest(BaseModel):
    file_id: Optional[str] = None
    tenant_id: Optional[str] = None


class VerifyResponse(BaseModel):
    file_id: str
    indexing_status: str
    success: Optional[bool] = None
    message: Optional[str] = None


class SearchRequest(BaseModel):
    """Request body accepted by the search endpoint."""

    query: Optional[str] = None
    tenant_id: Optional[str] = None
    sub_tenant_id: Optional[str] = None
    max_chunks: Optional[int] = Field(None, ge=1)
    alpha: float = Field(DEFAULT_ALPHA, description="Hybrid search weighting between semantic and keyword.")
    recency_bias: float = DEFAULT_RECENCY_BIAS


class AnswerRequest(BaseModel):
    query: Optional[str] = None
    chunks: Optional[list[dict[str, Any]]] = None


class AnswerResponse(BaseModel):
    answer: str


class LocateRequest(BaseModel):
    """A search chunk together with the page text it should be placed in."""

    chunk: dict[str, Any]
    pages: list[str]


class HighlightResponse(BaseModel):
    page_index: int
    start: int
    end: int
    strategy: str
    chunk_id: Optional[str] = None
    text: str


class SessionSearchRequest(BaseModel):
    query: Optional[str] = None
    max_chunks: Optional[int] = Field(None, ge=1)
    alpha: float = DEFAULT_ALPHA
    recency_bias: float = DEFAULT_RECENCY_BIAS


class SessionSearchResponse(BaseModel):
    results: list[dict[str, Any]]
    applied: bool
    sequence: int


class SessionHighlightRequest(BaseModel):
    chunk: Optional[dict[str, Any]] = None
    chunk_index: Optional[int] = Field(None, ge=0)


def _json_error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def _error_response(exc: ConstructError, label: str) -> JSONResponse:
    if isinstance(exc, UpstreamHTTPError):
        return _json_error(exc.status_code, label, exc.body)
    if isinstance(exc, UpstreamUnavailableError):
        return _json_error(502, label, str(exc))
    if isinstance(exc, ConfigurationError):
        return _json_error(500, str(exc))
    if isinstance(exc, PDFExtractionError):
        return _json_error(422, "PDF parse failed", str(exc))
    if isinstance(exc, SessionNotFoundError):
        return _json_error(404, str(exc))
    return _json_error(500, "Unexpected server error", str(exc))


def _serialise_highlight(highlight: Highlight, pages: list[str]) -> HighlightResponse:
    return HighlightResponse(
        page_index=highlight.page_index,
        start=highlight.start,
        end=highlight.end,
        strategy=highlight.strategy,
        chunk_id=highlight.chunk_id,
        text=describe(highlight, pages),
    )


def _serialise_status(status: IndexingStatus) -> VerifyResponse:
    return VerifyResponse(
        file_id=status.file_id,
        indexing_status=status.indexing_status,
        success=status.success,
        message=status.message,
    )


def _form_text(form: Any, key: str) -> Optional[str]:
    value = form.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


async def _answer(request: AnswerRequest, service: ConstructService):
    if not request.query or request.chunks is None:
        return _json_error(400, "query and chunks are required")
    try:
        answer = await service.answer(request.query, request.chunks)
    except ConstructError as exc:
        return _error_response(exc, "OpenAI call failed")
    return AnswerResponse(answer=answer)


@router.post("", response_model=None)
async def upload_document(
    request: Request,
    action: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    sub_tenant_id: Optional[str] = Query(None),
    service: ConstructService = Depends(get_construct_service),
):
    """Upload a PDF to Cortex and return its extracted page text.

    ``?action=llm_answer`` switches the endpoint to answer synthesis and
    expects a JSON body instead of a multipart form.
    """

    if action == "llm_answer":
        try:
            payload = AnswerRequest.model_validate(await request.json())
        except (ValueError, ValidationError):
            return _json_error(400, "query and chunks are required")
        return await _answer(payload, service)

    form = await request.form()
    upload = form.get("file")
    if not isinstance(upload, UploadFile):
        return _json_error(400, 'Missing file in form-data under key "file"')

    data = await upload.read()
    if not data:
        return _json_error(400, "Uploaded file is empty")
    try:
        outcome = await service.upload(
            upload.filename or "document.pdf",
            data,
            content_type=upload.content_type or "application/pdf",
            tenant_id=_form_text(form, "tenant_id") or tenant_id,
            sub_tenant_id=_form_text(form, "sub_tenant_id") or sub_tenant_id,
            tenant_metadata=_form_text(form, "tenant_metadata"),
            document_metadata=_form_text(form, "document_metadata"),
            session_id=_form_text(form, "session_id"),
            watch_indexing=(_form_text(form, "watch_indexing") or "true").lower() not in {"0", "false", "no", "off"},
        )
    except ConstructError as exc:
        return _error_response(exc, "Upload to Cortex failed")

    return UploadResponse(
        upload=UploadPayload(
            file_id=outcome.upload.file_id,
            message=outcome.upload.message,
            success=outcome.upload.success,
        ),
        pages=outcome.pages,
        session_id=outcome.session_id,
    )


@router.post("/answer", response_model=None)
async def answer_query(
    request: AnswerRequest,
    service: ConstructService = Depends(get_construct_service),
):
    """Synthesize a grounded answer over the supplied chunks."""

    return await _answer(request, service)


@router.post("/verify", response_model=None)
async def verify_processing(
    request: Request,
    service: ConstructService = Depends(get_construct_service),
):
    """Report the Cortex indexing status of an uploaded file."""

    try:
        payload = VerifyRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        payload = VerifyRequest()
    if not payload.file_id:
        return _json_error(400, "file_id is required")

    try:
        status = await service.verify(payload.file_id, tenant_id=payload.tenant_id)
    except ConstructError as exc:
        return _error_response(exc, "Verify failed")
    return _serialise_status(status)


@router.post("/search", response_model=None)
async def search_chunks(
    request: Request,
    service: ConstructService = Depends(get_construct_service),
):
    """Run a semantic search against the indexed documents."""

    try:
        payload = SearchRequest.model_validate(await request.json())
    except ValidationError as exc:
        return _json_error(400, "Invalid search request", str(exc))
    except ValueError:
        payload = SearchRequest()
    if not payload.query or not payload.query.strip():
        return _json_error(400, "query is required")

    try:
        results = await service.search(
            payload.query,
            tenant_id=payload.tenant_id,
            sub_tenant_id=payload.sub_tenant_id,
            max_chunks=payload.max_chunks,
            alpha=payload.alpha,
            recency_bias=payload.recency_bias,
        )
    except ConstructError as exc:
        return _error_response(exc, "Search failed")
    return JSONResponse(results)


@router.post("/locate", response_model=HighlightResponse)
def locate_chunk(
    request: LocateRequest,
    service: ConstructService = Depends(get_construct_service),
) -> HighlightResponse:
    """Compute the highlight span of a chunk within client-held page text."""

    highlight = service.locate(request.chunk, request.pages)
    return _serialise_highlight(highlight, request.pages)


@router.get("/sessions/{session_id}", response_model=None)
def get_session(
    session_id: str,
    service: ConstructService = Depends(get_construct_service),
):
    try:
        session = service.get_session(session_id)
    except SessionNotFoundError as exc:
        return _error_response(exc, "Session lookup failed")
    return session.snapshot()


@router.post("/sessions/{session_id}/search", response_model=None)
async def search_in_session(
    session_id: str,
    request: SessionSearchRequest,
    service: ConstructService = Depends(get_construct_service),
):
    """Search within the session's tenant; only the latest issued search is kept."""

    if not request.query or not request.query.strip():
        return _json_error(400, "query is required")
    try:
        result = await service.session_search(
            session_id,
            request.query,
            max_chunks=request.max_chunks,
            alpha=request.alpha,
            recency_bias=request.recency_bias,
        )
    except ConstructError as exc:
        return _error_response(exc, "Search failed")
    return SessionSearchResponse(results=result.results, applied=result.applied, sequence=result.sequence)


@router.post("/sessions/{session_id}/highlight", response_model=None)
def highlight_in_session(
    session_id: str,
    request: SessionHighlightRequest,
    service: ConstructService = Depends(get_construct_service),
):
    """Select a chunk and compute its highlight within the session's pages."""

    try:
        highlight = service.session_highlight(
            session_id, chunk=request.chunk, chunk_index=request.chunk_index
        )
    except ConstructError as exc:
        return _error_response(exc, "Highlight failed")
    except ValueError as exc:
        return _json_error(400, str(exc))
    return _serialise_highlight(highlight, service.get_session(session_id).pages)


@router.delete("/sessions/{session_id}", response_model=None)
def discard_session(
    session_id: str,
    service: ConstructService = Depends(get_construct_service),
):
    if not service.discard_session(session_id):
        return _json_error(404, f"Unknown session: {session_id}")
    return {"status": "discarded", "session_id": session_id}
