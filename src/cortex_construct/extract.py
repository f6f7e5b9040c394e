"""Per-page text extraction for uploaded PDF documents."""
from __future__ import annotations

import logging
import tempfile
import time
from pathlib import Path
from typing import Iterable, List, Optional

from pdfminer.high_level import extract_pages
from pdfminer.layout import LAParams, LTPage, LTTextContainer

from .errors import PDFExtractionError
from .telemetry import emit_extraction_event

LOGGER = logging.getLogger(__name__)


def _page_fragments(page: LTPage) -> Iterable[str]:
    for element in page:
        if not isinstance(element, LTTextContainer):
            continue
        fragment = " ".join(element.get_text().split())
        if fragment:
            yield fragment


def _page_text(page: LTPage) -> str:
    return " ".join(_page_fragments(page))


def extract_pdf_pages(path: Path) -> List[str]:
    """Return the visible text of every page in ``path``.

    Text fragments of a page are whitespace-normalised and joined with single
    spaces. Blank pages produce an empty string so indices stay aligned with
    page numbers.
    """

    try:
        return [_page_text(page) for page in extract_pages(str(path), laparams=LAParams())]
    except Exception as error:
        LOGGER.warning("pdfminer failed to extract text from %s: %s", path, error)
        raise PDFExtractionError(f"Unable to parse PDF: {error}", cause=error) from error


def extract_page_texts(
    data: bytes,
    file_name: str = "document.pdf",
    *,
    tmp_root: Optional[Path] = None,
    session_id: str | None = None,
) -> List[str]:
    """Extract per-page text from raw PDF bytes.

    The bytes are spooled to a private temporary directory that is removed on
    every exit path, including parse failures.
    """

    if not data:
        raise PDFExtractionError("Uploaded PDF is empty")

    started = time.perf_counter()
    emit_extraction_event(
        "extract.start", file_name=file_name, size_bytes=len(data), session_id=session_id
    )
    with tempfile.TemporaryDirectory(prefix="construct-", dir=tmp_root) as tmpdir:
        pdf_path = Path(tmpdir) / "upload.pdf"
        pdf_path.write_bytes(data)
        pages = extract_pdf_pages(pdf_path)

    emit_extraction_event(
        "extract.complete",
        file_name=file_name,
        size_bytes=len(data),
        pages=len(pages),
        duration_ms=(time.perf_counter() - started) * 1000.0,
        session_id=session_id,
    )
    return pages


__all__ = ["extract_page_texts", "extract_pdf_pages"]
