"""Utilities for constructing grounded answer prompts."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from .layout import chunk_page_number

_PROMPT_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_PROMPT_PATH = _PROMPT_DIR / "system.txt"
_USER_PROMPT_PATH = _PROMPT_DIR / "user.md"

CHUNK_SEPARATOR = "\n\n---\n\n"


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


SYSTEM_PROMPT = _load_template(_SYSTEM_PROMPT_PATH)
_USER_TEMPLATE = _load_template(_USER_PROMPT_PATH)


def format_chunk(index: int, chunk: Mapping[str, Any]) -> str:
    """Render one retrieved chunk as a numbered context block."""

    page = chunk_page_number(chunk)
    page_line = f"\nPage: {page}" if page else ""
    content = str(chunk.get("chunk_content") or "").strip()
    return f"Chunk {index}:{page_line}\n{content}"


def build_messages(query: str, chunks: Sequence[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """Compose the chat messages used to answer ``query`` from ``chunks``."""

    if query is None:
        raise ValueError("query must not be None")

    context_block = CHUNK_SEPARATOR.join(
        format_chunk(index, chunk) for index, chunk in enumerate(chunks, start=1)
    )
    user_block = _USER_TEMPLATE.format(query=query, chunks=context_block)
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_block},
    ]


__all__ = ["SYSTEM_PROMPT", "build_messages", "format_chunk"]
