from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from cortex_construct.config import Settings, get_settings
from cortex_construct.cortex_client import DEFAULT_ALPHA, DEFAULT_RECENCY_BIAS, CortexClient
from cortex_construct.extract import extract_page_texts
from cortex_construct.layout import chunk_from_payload
from cortex_construct.llm_client import ChatCompletionClient
from cortex_construct.locator import locate
from cortex_construct.models import Highlight, IndexingStatus, SearchChunk, UploadResult
from cortex_construct.polling import CancellationToken, IndexingPoller, SleepFn
from cortex_construct.session import DocumentSession, SessionStore
from cortex_construct.telemetry import emit_exception

LOGGER = logging.getLogger(__name__)

ChunkInput = Union[SearchChunk, Mapping[str, Any]]


@dataclass(slots=True)
class UploadOutcome:
    """Structured result returned from :meth:`ConstructService.upload`."""

    upload: UploadResult
    pages: List[str]
    session_id: Optional[str] = None


@dataclass(slots=True)
class SessionSearchResult:
    """Results of a session search and whether they became the session's results."""

    results: List[dict[str, Any]]
    applied: bool
    sequence: int


def _as_chunk(chunk: ChunkInput) -> SearchChunk:
    if isinstance(chunk, SearchChunk):
        return chunk
    return chunk_from_payload(chunk)


class ConstructService:
    """Orchestrates upload, indexing, search, answers and highlighting."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        cortex_factory: Callable[[], CortexClient] | None = None,
        llm_factory: Callable[[], ChatCompletionClient] | None = None,
        store: SessionStore | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self._cortex_factory = cortex_factory or (lambda: CortexClient.from_settings(self.settings))
        self._llm_factory = llm_factory or (lambda: ChatCompletionClient.from_settings(self.settings))
        self.sessions = store if store is not None else SessionStore(
            max_sessions=self.settings.session_max_count,
            idle_ttl_seconds=self.settings.session_idle_ttl_seconds,
        )
        self._sleep = sleep

    # Upstream passthroughs -------------------------------------------------------
    async def upload(
        self,
        file_name: str,
        data: bytes,
        *,
        content_type: str = "application/pdf",
        tenant_id: Optional[str] = None,
        sub_tenant_id: Optional[str] = None,
        tenant_metadata: Optional[str] = None,
        document_metadata: Optional[str] = None,
        session_id: Optional[str] = None,
        watch_indexing: bool = True,
    ) -> UploadOutcome:
        """Forward ``data`` to Cortex while extracting its page text locally.

        Extraction runs in a worker thread alongside the upload and is awaited
        before returning. An upload failure discards the extraction. Empty
        ``data`` is rejected before anything is sent upstream.
        """

        if not data:
            raise ValueError("Uploaded file is empty")
        cortex = self._cortex_factory()
        extraction = asyncio.ensure_future(
            asyncio.to_thread(extract_page_texts, data, file_name, session_id=session_id)
        )
        try:
            upload = await cortex.upload_document(
                file_name,
                data,
                content_type=content_type,
                tenant_id=tenant_id,
                sub_tenant_id=sub_tenant_id,
                tenant_metadata=tenant_metadata,
                document_metadata=document_metadata,
            )
        except BaseException:
            extraction.cancel()
            raise
        pages = await extraction

        if session_id:
            session = self.sessions.get_or_create(session_id)
            token = session.start_document(
                file_id=upload.file_id,
                file_name=file_name,
                pages=pages,
                tenant_id=tenant_id,
                sub_tenant_id=sub_tenant_id,
            )
            if watch_indexing:
                session.poll_task = asyncio.create_task(self._watch_session(session, token))
        return UploadOutcome(upload=upload, pages=pages, session_id=session_id)

    async def verify(self, file_id: str, *, tenant_id: Optional[str] = None) -> IndexingStatus:
        if not file_id:
            raise ValueError("file_id is required")
        return await self._cortex_factory().verify_processing(file_id, tenant_id=tenant_id)

    async def wait_for_indexing(
        self,
        file_id: str,
        *,
        tenant_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        on_status: Optional[Callable[[IndexingStatus], None]] = None,
        session_id: Optional[str] = None,
    ) -> Optional[IndexingStatus]:
        cortex = self._cortex_factory()

        async def _verify(target: str) -> IndexingStatus:
            return await cortex.verify_processing(target, tenant_id=tenant_id)

        poller = IndexingPoller(
            _verify,
            base_delay=self.settings.poll_base_delay_seconds,
            max_delay=self.settings.poll_max_delay_seconds,
            max_attempts=self.settings.poll_max_attempts,
            sleep=self._sleep,
        )
        return await poller.poll(file_id, token=token, on_status=on_status, session_id=session_id)

    async def search(
        self,
        query: str,
        *,
        tenant_id: Optional[str] = None,
        sub_tenant_id: Optional[str] = None,
        max_chunks: Optional[int] = None,
        alpha: float = DEFAULT_ALPHA,
        recency_bias: float = DEFAULT_RECENCY_BIAS,
    ) -> List[dict[str, Any]]:
        if not query or not query.strip():
            raise ValueError("query is required")
        return await self._cortex_factory().search(
            query,
            tenant_id=tenant_id,
            sub_tenant_id=sub_tenant_id,
            max_chunks=max_chunks,
            alpha=alpha,
            recency_bias=recency_bias,
        )

    async def answer(self, query: str, chunks: Sequence[Mapping[str, Any]]) -> str:
        if not query or not query.strip():
            raise ValueError("query and chunks are required")
        return await self._llm_factory().answer(query, chunks)

    def locate(self, chunk: ChunkInput, pages: Sequence[str]) -> Highlight:
        return locate(_as_chunk(chunk), pages)

    # Session workflow ------------------------------------------------------------
    def get_session(self, session_id: str) -> DocumentSession:
        return self.sessions.get(session_id)

    def discard_session(self, session_id: str) -> bool:
        return self.sessions.discard(session_id)

    async def session_search(
        self,
        session_id: str,
        query: str,
        *,
        max_chunks: Optional[int] = None,
        alpha: float = DEFAULT_ALPHA,
        recency_bias: float = DEFAULT_RECENCY_BIAS,
    ) -> SessionSearchResult:
        session = self.sessions.get(session_id)
        if not query or not query.strip():
            raise ValueError("query is required")
        sequence = session.begin_search(query)
        results = await self.search(
            query,
            tenant_id=session.tenant_id,
            sub_tenant_id=session.sub_tenant_id,
            max_chunks=max_chunks,
            alpha=alpha,
            recency_bias=recency_bias,
        )
        applied = session.apply_search(sequence, results)
        return SessionSearchResult(results=results, applied=applied, sequence=sequence)

    def session_highlight(
        self,
        session_id: str,
        *,
        chunk: Optional[ChunkInput] = None,
        chunk_index: Optional[int] = None,
    ) -> Highlight:
        session = self.sessions.get(session_id)
        if chunk is None:
            if chunk_index is None:
                raise ValueError("chunk or chunk_index is required")
            if not 0 <= chunk_index < len(session.results):
                raise ValueError(f"chunk_index {chunk_index} is out of range")
            chunk = session.results[chunk_index]
        highlight = self.locate(chunk, session.pages)
        session.set_highlight(highlight)
        return highlight

    async def _watch_session(self, session: DocumentSession, token: CancellationToken) -> None:
        file_id = session.file_id
        if not file_id:
            return
        try:
            await self.wait_for_indexing(
                file_id,
                tenant_id=session.tenant_id,
                token=token,
                on_status=lambda status: session.apply_status(token, status),
                session_id=session.session_id,
            )
        except asyncio.CancelledError:
            LOGGER.info("Indexing watch for %s cancelled", file_id)
            raise
        except Exception as error:
            # Runs detached from any request, so the failure is recorded on the
            # session instead of propagating into the event loop.
            emit_exception(module=f"{__name__}.watch", error=error, session_id=session.session_id)
            if not token.cancelled:
                session.indexing_message = f"Status polling stopped: {error}"


_construct_service: ConstructService | None = None


def get_construct_service() -> ConstructService:
    """FastAPI dependency returning the shared :class:`ConstructService` instance."""

    global _construct_service
    if _construct_service is None:
        _construct_service = ConstructService()
    return _construct_service
