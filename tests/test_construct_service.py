from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import httpx
import pytest

from cortex_construct.errors import PDFExtractionError, SessionNotFoundError, UpstreamHTTPError
from cortex_construct.models import SearchChunk


def test_upload_returns_cortex_result_and_pages(make_service, cortex_api, pdf_bytes) -> None:
    service = make_service()

    outcome = asyncio.run(service.upload("lease.pdf", pdf_bytes, tenant_id="acme"))

    assert outcome.upload.file_id == "file-123"
    assert outcome.pages == ["Hello PDF", "", "Second page text"]
    assert outcome.session_id is None
    assert cortex_api.calls_to("/upload/upload_document")[0].url.params["tenant_id"] == "acme"
    assert len(service.sessions) == 0


def test_upload_failure_propagates_status_and_creates_no_session(make_service, cortex_api, pdf_bytes) -> None:
    cortex_api.failures["/upload/upload_document"] = httpx.Response(401, text="bad key")
    service = make_service()

    with pytest.raises(UpstreamHTTPError) as excinfo:
        asyncio.run(service.upload("lease.pdf", pdf_bytes, session_id="s1"))

    assert excinfo.value.status_code == 401
    assert "s1" not in service.sessions


def test_unparseable_pdf_raises_extraction_error(make_service) -> None:
    service = make_service()

    with pytest.raises(PDFExtractionError):
        asyncio.run(service.upload("broken.pdf", b"not a pdf at all"))


def test_watched_session_reaches_terminal_status(make_service, cortex_api, pdf_bytes) -> None:
    cortex_api.statuses = ["queued", "processing", "completed"]
    service = make_service()

    async def scenario():
        outcome = await service.upload("lease.pdf", pdf_bytes, session_id="s1")
        session = service.get_session(outcome.session_id)
        await session.poll_task
        return session

    session = asyncio.run(scenario())

    assert session.file_id == "file-123"
    assert session.pages[2] == "Second page text"
    assert session.indexing_status == "completed"
    assert len(cortex_api.calls_to("/upload/verify_processing")) == 3


def test_new_upload_cancels_previous_poll(make_service, cortex_api, pdf_bytes) -> None:
    cortex_api.statuses = ["processing"]

    async def scenario():
        gate = asyncio.Event()

        async def gated_sleep(_: float) -> None:
            await gate.wait()

        service = make_service(sleep=gated_sleep)
        await service.upload("first.pdf", pdf_bytes, session_id="s1")
        session = service.get_session("s1")
        first_task = session.poll_task
        while session.indexing_status != "processing":
            await asyncio.sleep(0)

        cortex_api.file_id = "file-456"
        cortex_api.statuses = ["completed"]
        await service.upload("second.pdf", pdf_bytes, session_id="s1")
        second_task = session.poll_task
        gate.set()
        await second_task
        await asyncio.gather(first_task, return_exceptions=True)
        return session, first_task

    session, first_task = asyncio.run(scenario())

    assert first_task.cancelled()
    assert session.file_id == "file-456"
    assert session.file_name == "second.pdf"
    assert session.indexing_status == "completed"


def test_watch_failure_is_recorded_on_session(make_service, pdf_bytes, monkeypatch) -> None:
    service = make_service()

    async def broken_wait(*args: Any, **kwargs: Any):
        raise RuntimeError("poller exploded")

    monkeypatch.setattr(service, "wait_for_indexing", broken_wait)

    async def scenario():
        await service.upload("lease.pdf", pdf_bytes, session_id="s1")
        session = service.get_session("s1")
        await session.poll_task
        return session

    session = asyncio.run(scenario())

    assert session.indexing_status == "queued"
    assert "poller exploded" in session.indexing_message


def test_upload_without_watch_leaves_status_queued(make_service, cortex_api, pdf_bytes) -> None:
    service = make_service()

    asyncio.run(service.upload("lease.pdf", pdf_bytes, session_id="s1", watch_indexing=False))

    session = service.get_session("s1")
    assert session.poll_task is None
    assert session.indexing_status == "queued"
    assert cortex_api.calls_to("/upload/verify_processing") == []


def test_wait_for_indexing_uses_configured_backoff(make_service, cortex_api) -> None:
    cortex_api.statuses = ["queued", "queued", "completed"]
    delays: List[float] = []

    async def recording_sleep(delay: float) -> None:
        delays.append(delay)

    service = make_service(sleep=recording_sleep)

    status = asyncio.run(service.wait_for_indexing("file-123"))

    assert status is not None and status.indexing_status == "completed"
    assert delays == [0.002, 0.004]


def test_session_search_applies_only_latest_response(make_service) -> None:
    class GatedCortex:
        def __init__(self) -> None:
            self.gates: Dict[str, asyncio.Event] = {}

        async def search(self, query: str, **kwargs: Any) -> List[Dict[str, Any]]:
            await self.gates[query].wait()
            return [{"chunk_content": f"result for {query}"}]

    cortex = GatedCortex()
    service = make_service(cortex_factory=lambda: cortex)
    service.sessions.get_or_create("s1")

    async def scenario():
        cortex.gates = {"first": asyncio.Event(), "second": asyncio.Event()}
        first = asyncio.create_task(service.session_search("s1", "first"))
        await asyncio.sleep(0)
        second = asyncio.create_task(service.session_search("s1", "second"))
        await asyncio.sleep(0)
        cortex.gates["second"].set()
        second_result = await second
        cortex.gates["first"].set()
        first_result = await first
        return first_result, second_result

    first_result, second_result = asyncio.run(scenario())

    assert second_result.applied is True
    assert first_result.applied is False
    assert (first_result.sequence, second_result.sequence) == (1, 2)
    session = service.get_session("s1")
    assert session.results == [{"chunk_content": "result for second"}]
    assert session.query == "second"


def test_session_search_uses_session_tenant(make_service, cortex_api, pdf_bytes) -> None:
    cortex_api.search_results = [{"chunk_content": "Hello PDF", "layout": {"page": 1}}]
    service = make_service()

    async def scenario():
        await service.upload(
            "lease.pdf", pdf_bytes, tenant_id="acme", sub_tenant_id="legal", session_id="s1", watch_indexing=False
        )
        return await service.session_search("s1", "hello", max_chunks=3)

    result = asyncio.run(scenario())

    assert result.applied is True
    request = cortex_api.calls_to("/search/retrieve")[0]
    assert b'"tenant_id":"acme"' in request.content.replace(b" ", b"")
    assert b'"sub_tenant_id":"legal"' in request.content.replace(b" ", b"")


def test_session_highlight_by_index(make_service, pdf_bytes) -> None:
    service = make_service()
    asyncio.run(service.upload("lease.pdf", pdf_bytes, session_id="s1", watch_indexing=False))
    session = service.get_session("s1")
    session.apply_search(
        session.begin_search("second"),
        [{"chunk_content": "page text", "layout": '{"page": 3, "offsets": {"page_level_start_index": 99}}'}],
    )

    highlight = service.session_highlight("s1", chunk_index=0)

    assert (highlight.page_index, highlight.start, highlight.end) == (2, 7, 16)
    assert session.highlight == highlight
    with pytest.raises(ValueError):
        service.session_highlight("s1", chunk_index=5)
    with pytest.raises(ValueError):
        service.session_highlight("s1")
    with pytest.raises(SessionNotFoundError):
        service.session_highlight("missing", chunk_index=0)


def test_locate_accepts_chunks_and_raw_records(make_service) -> None:
    service = make_service()
    pages = ["The quick brown fox jumps over the lazy dog."]

    from_record = service.locate({"chunk_content": "brown fox", "layout": {"page": 1}}, pages)
    from_chunk = service.locate(SearchChunk(content="brown fox"), pages)

    assert (from_record.start, from_record.end) == (10, 19)
    assert from_record.start == from_chunk.start


def test_answer_requires_query(make_service) -> None:
    with pytest.raises(ValueError):
        asyncio.run(make_service().answer("  ", []))


def test_answer_calls_chat_completion(make_service, openai_api) -> None:
    answer = asyncio.run(make_service().answer("How long?", [{"chunk_content": "Two years.", "page": 1}]))

    assert answer == openai_api.answer
    assert "Chunk 1:\nPage: 1\nTwo years." in openai_api.requests[0]["messages"][1]["content"]


def test_discard_session_cancels_polling(make_service, cortex_api, pdf_bytes) -> None:
    cortex_api.statuses = ["processing"]

    async def scenario():
        gate = asyncio.Event()

        async def gated_sleep(_: float) -> None:
            await gate.wait()

        service = make_service(sleep=gated_sleep)
        await service.upload("lease.pdf", pdf_bytes, session_id="s1")
        task = service.get_session("s1").poll_task
        discarded = service.discard_session("s1")
        await asyncio.gather(task, return_exceptions=True)
        return service, task, discarded

    service, task, discarded = asyncio.run(scenario())

    assert discarded is True
    assert task.cancelled()
    assert "s1" not in service.sessions


def test_empty_upload_never_reaches_cortex(make_service, cortex_api) -> None:
    service = make_service()

    with pytest.raises(ValueError, match="empty"):
        asyncio.run(service.upload("empty.pdf", b"", session_id="s1"))

    assert cortex_api.calls_to("/upload/upload_document") == []
    assert "s1" not in service.sessions
