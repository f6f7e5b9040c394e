"""Per-viewer document context: pages, indexing status, results and highlight."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .errors import SessionNotFoundError
from .models import Highlight, IndexingStatus
from .polling import CancellationToken

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DocumentSession:
    """The single "current document" of one viewing session.

    A new upload invalidates the previous document's cancellation token so a
    poll that is still in flight can no longer write into the session.
    Searches follow a last-issued-wins policy: a response is only applied when
    no newer search was started in the meantime.
    """

    session_id: str
    tenant_id: Optional[str] = None
    sub_tenant_id: Optional[str] = None
    file_id: Optional[str] = None
    file_name: Optional[str] = None
    pages: List[str] = field(default_factory=list)
    indexing_status: Optional[str] = None
    indexing_message: Optional[str] = None
    query: Optional[str] = None
    results: List[Dict[str, Any]] = field(default_factory=list)
    highlight: Optional[Highlight] = None
    token: CancellationToken = field(default_factory=CancellationToken)
    poll_task: Optional["asyncio.Task[Any]"] = None
    search_seq: int = 0
    last_used: float = 0.0

    def start_document(
        self,
        *,
        file_id: str,
        file_name: str,
        pages: List[str],
        tenant_id: Optional[str] = None,
        sub_tenant_id: Optional[str] = None,
    ) -> CancellationToken:
        """Replace the current document and return the token guarding it."""

        self._stop_polling()
        self.token = CancellationToken()
        self.file_id = file_id
        self.file_name = file_name
        self.pages = list(pages)
        self.tenant_id = tenant_id
        self.sub_tenant_id = sub_tenant_id
        self.indexing_status = "queued"
        self.indexing_message = ""
        self.query = None
        self.results = []
        self.highlight = None
        return self.token

    def apply_status(self, token: CancellationToken, status: IndexingStatus) -> bool:
        if token is not self.token or token.cancelled or status.file_id != self.file_id:
            LOGGER.info("Dropping stale indexing status for %s in session %s", status.file_id, self.session_id)
            return False
        self.indexing_status = status.indexing_status
        self.indexing_message = status.message or ""
        return True

    def begin_search(self, query: str) -> int:
        self.search_seq += 1
        self.query = query
        return self.search_seq

    def apply_search(self, seq: int, results: List[Dict[str, Any]]) -> bool:
        if seq != self.search_seq:
            LOGGER.info(
                "Dropping search response %s in session %s; newer search %s was issued",
                seq,
                self.session_id,
                self.search_seq,
            )
            return False
        self.results = list(results)
        self.highlight = None
        return True

    def set_highlight(self, highlight: Highlight) -> None:
        self.highlight = highlight

    def discard(self) -> None:
        self._stop_polling()

    def _stop_polling(self) -> None:
        self.token.cancel()
        if self.poll_task is not None and not self.poll_task.done():
            self.poll_task.cancel()
        self.poll_task = None

    def snapshot(self) -> Dict[str, Any]:
        highlight = None
        if self.highlight is not None:
            highlight = {
                "page_index": self.highlight.page_index,
                "start": self.highlight.start,
                "end": self.highlight.end,
                "strategy": self.highlight.strategy,
                "chunk_id": self.highlight.chunk_id,
            }
        return {
            "session_id": self.session_id,
            "tenant_id": self.tenant_id,
            "sub_tenant_id": self.sub_tenant_id,
            "file_id": self.file_id,
            "file_name": self.file_name,
            "page_count": len(self.pages),
            "indexing_status": self.indexing_status,
            "indexing_message": self.indexing_message,
            "query": self.query,
            "result_count": len(self.results),
            "highlight": highlight,
        }


class SessionStore:
    """In-memory registry of viewing sessions owned by the service.

    Sessions idle for longer than ``idle_ttl_seconds`` are discarded, and once
    more than ``max_sessions`` exist the least recently used ones go first.
    A value of ``0`` disables the corresponding limit.
    """

    def __init__(
        self,
        *,
        max_sessions: int = 256,
        idle_ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: Dict[str, DocumentSession] = {}
        self.max_sessions = max_sessions
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock

    def get_or_create(self, session_id: str) -> DocumentSession:
        self._evict_idle()
        session = self._sessions.get(session_id)
        if session is None:
            session = self._sessions[session_id] = DocumentSession(session_id=session_id)
        session.last_used = self._clock()
        self._evict_overflow()
        return session

    def get(self, session_id: str) -> DocumentSession:
        self._evict_idle()
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"Unknown session: {session_id}") from None
        session.last_used = self._clock()
        return session

    def discard(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.discard()
        return True

    def _evict_idle(self) -> None:
        if self.idle_ttl_seconds <= 0:
            return
        cutoff = self._clock() - self.idle_ttl_seconds
        for session_id in [sid for sid, s in self._sessions.items() if s.last_used < cutoff]:
            LOGGER.info("Evicting idle session %s", session_id)
            self.discard(session_id)

    def _evict_overflow(self) -> None:
        if self.max_sessions <= 0 or len(self._sessions) <= self.max_sessions:
            return
        by_age = sorted(self._sessions.values(), key=lambda s: s.last_used)
        for session in by_age[: len(self._sessions) - self.max_sessions]:
            LOGGER.info("Evicting session %s; store holds more than %s", session.session_id, self.max_sessions)
            self.discard(session.session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["DocumentSession", "SessionStore"]
