"""Reconcile search chunks with the locally extracted page text.

The indexing service reports an approximate page number and character offset
for every chunk. Those offsets are computed on the service's own copy of the
text, so they drift, go stale or point past the end of the page once the PDF
has been re-extracted locally. :func:`locate` maps a chunk back onto the local
page text and always returns a usable highlight.
"""
from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from .models import Highlight, SearchChunk

LOGGER = logging.getLogger(__name__)

WINDOW_CHARS = 150
MIN_HIGHLIGHT_CHARS = 20

STRATEGY_EXACT = "exact_offset"
STRATEGY_WINDOW = "window"
STRATEGY_WINDOW_CASEFOLD = "window_casefold"
STRATEGY_PAGE = "page"
STRATEGY_PAGE_CASEFOLD = "page_casefold"
STRATEGY_FALLBACK = "fallback"


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


def _search(haystack: str, needle: str) -> tuple[int, bool] | None:
    """Return ``(index, casefolded)`` of the first occurrence of ``needle``."""

    index = haystack.find(needle)
    if index >= 0:
        return index, False
    # Indices must refer to haystack itself; str.lower() may change its length.
    match = re.search(re.escape(needle), haystack, re.IGNORECASE)
    if match is not None:
        return match.start(), True
    return None


def find_in_window(
    page_text: str,
    needle: str,
    approx_start: int,
    window: int = WINDOW_CHARS,
) -> tuple[int, bool] | None:
    """Search ``needle`` in ``[approx_start - window, approx_start + len + window]``.

    Returns the absolute index and whether the match needed case folding, or
    ``None`` when the window does not contain the text.
    """

    if not needle or not page_text:
        return None
    anchor = clamp(approx_start, 0, len(page_text) - 1)
    lower = clamp(anchor - window, 0, len(page_text))
    upper = clamp(anchor + len(needle) + window, 0, len(page_text))
    found = _search(page_text[lower:upper], needle)
    if found is None:
        return None
    relative, casefolded = found
    return lower + relative, casefolded


def _match(page_text: str, content: str, approx_start: int) -> tuple[int, str] | None:
    if not content:
        return None

    end = approx_start + len(content)
    if approx_start >= 0 and end <= len(page_text) and page_text[approx_start:end] == content:
        return approx_start, STRATEGY_EXACT

    # The neighbourhood of the reported offset is searched before the whole
    # page so that a short phrase repeated elsewhere does not steal the match.
    found = find_in_window(page_text, content, approx_start)
    if found is not None:
        index, casefolded = found
        return index, STRATEGY_WINDOW_CASEFOLD if casefolded else STRATEGY_WINDOW

    found = _search(page_text, content)
    if found is not None:
        index, casefolded = found
        return index, STRATEGY_PAGE_CASEFOLD if casefolded else STRATEGY_PAGE

    return None


def locate(chunk: SearchChunk, pages: Sequence[str]) -> Highlight:
    """Compute the highlight span of ``chunk`` inside ``pages``.

    Never raises: out-of-range pages resolve to empty text and unplaceable
    content falls back to the reported offset with a minimum visible length.
    """

    layout = chunk.layout
    page_number = layout.page if layout is not None and layout.page is not None else 1
    page_index = max(0, page_number - 1)
    page_text = pages[page_index] if page_index < len(pages) else ""
    page_text = page_text or ""

    approx_start = 0
    if layout is not None and layout.offsets.page_level_start_index is not None:
        approx_start = layout.offsets.page_level_start_index

    content = chunk.content or ""
    matched = _match(page_text, content, approx_start)
    if matched is not None:
        start, strategy = matched
        end = start + len(content)
    else:
        strategy = STRATEGY_FALLBACK
        start = clamp(approx_start, 0, max(0, len(page_text) - 1))
        end = start + max(MIN_HIGHLIGHT_CHARS, len(content))

    start = clamp(start, 0, len(page_text))
    end = clamp(end, start, len(page_text))
    if end <= start:
        end = min(start + MIN_HIGHLIGHT_CHARS, len(page_text))

    LOGGER.debug(
        "Located chunk %s on page %s via %s [%s:%s]",
        chunk.chunk_uuid or "-",
        page_index + 1,
        strategy,
        start,
        end,
    )
    return Highlight(
        page_index=page_index,
        start=start,
        end=end,
        strategy=strategy,
        chunk_id=chunk.chunk_uuid,
        chunk_text=chunk.content,
    )


def describe(highlight: Optional[Highlight], pages: Sequence[str]) -> str:
    """Return the highlighted text, or an empty string."""

    if highlight is None or highlight.page_index >= len(pages):
        return ""
    return pages[highlight.page_index][highlight.start : highlight.end]


__all__ = [
    "MIN_HIGHLIGHT_CHARS",
    "WINDOW_CHARS",
    "clamp",
    "describe",
    "find_in_window",
    "locate",
]
