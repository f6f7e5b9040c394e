"""Permissive decoding of the ``layout`` metadata returned by the search API."""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Optional

from .models import Layout, LayoutOffsets, SearchChunk

LOGGER = logging.getLogger(__name__)

# A JSON string may itself decode to another JSON string when the upstream
# service double-encodes the field.
_MAX_DECODE_DEPTH = 3


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def parse_layout(raw: Any) -> Optional[Layout]:
    """Decode ``raw`` into a :class:`Layout`.

    ``raw`` may be ``None``, an already structured mapping, a :class:`Layout`
    or a JSON encoded string. Anything that cannot be interpreted collapses to
    ``None`` instead of raising.
    """

    for _ in range(_MAX_DECODE_DEPTH):
        if not isinstance(raw, str):
            break
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except ValueError:
            LOGGER.debug("Ignoring undecodable layout payload: %.80s", raw)
            return None

    if isinstance(raw, Layout):
        return raw
    if not isinstance(raw, Mapping) or not raw:
        return None

    offsets_raw = raw.get("offsets")
    offsets = LayoutOffsets()
    if isinstance(offsets_raw, Mapping):
        offsets = LayoutOffsets(
            page_level_start_index=_as_int(offsets_raw.get("page_level_start_index")),
            document_level_start_index=_as_int(offsets_raw.get("document_level_start_index")),
        )

    return Layout(page=_as_int(raw.get("page")), offsets=offsets)


def chunk_from_payload(payload: Mapping[str, Any]) -> SearchChunk:
    """Build a :class:`SearchChunk` from a raw search API record."""

    score = payload.get("relevancy_score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        score = None
    chunk_uuid = payload.get("chunk_uuid")
    source_id = payload.get("source_id")
    return SearchChunk(
        content=str(payload.get("chunk_content") or ""),
        layout=parse_layout(payload.get("layout")),
        chunk_uuid=str(chunk_uuid) if chunk_uuid is not None else None,
        source_id=str(source_id) if source_id is not None else None,
        relevancy_score=float(score) if score is not None else None,
    )


def chunk_page_number(payload: Mapping[str, Any]) -> Optional[int]:
    """Return the page number advertised by a raw chunk, if any.

    A top-level numeric ``page`` wins over the one nested in ``layout``.
    """

    page = _as_int(payload.get("page"))
    if page is not None:
        return page
    layout = parse_layout(payload.get("layout"))
    return layout.page if layout is not None else None


__all__ = ["chunk_from_payload", "chunk_page_number", "parse_layout"]
