"""Data models shared by the locator, the Cortex client and the session store."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

PageText = List[str]
"""Extracted text of a document, one entry per page (index 0 is page 1)."""


@dataclass(slots=True, frozen=True)
class LayoutOffsets:
    """Character offsets reported by the indexing service for a chunk."""

    page_level_start_index: Optional[int] = None
    document_level_start_index: Optional[int] = None


@dataclass(slots=True, frozen=True)
class Layout:
    """Positional metadata attached to a search chunk."""

    page: Optional[int] = None
    offsets: LayoutOffsets = field(default_factory=LayoutOffsets)


@dataclass(slots=True, frozen=True)
class SearchChunk:
    """A passage returned by the semantic search API."""

    content: str
    layout: Optional[Layout] = None
    chunk_uuid: Optional[str] = None
    source_id: Optional[str] = None
    relevancy_score: Optional[float] = None


@dataclass(slots=True, frozen=True)
class Highlight:
    """Half-open character range inside ``pages[page_index]``."""

    page_index: int
    start: int
    end: int
    strategy: str
    chunk_id: Optional[str] = None
    chunk_text: Optional[str] = None


@dataclass(slots=True, frozen=True)
class UploadResult:
    """Response returned by the Cortex upload endpoint."""

    file_id: str
    message: str
    success: Optional[bool] = None


@dataclass(slots=True, frozen=True)
class IndexingStatus:
    """Response returned by the Cortex processing verification endpoint."""

    file_id: str
    indexing_status: str
    success: Optional[bool] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.indexing_status in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

