"""Shared fixtures: synthetic PDFs, settings and mocked upstream APIs."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence

import httpx
import pytest

from cortex_construct.config import Settings
from cortex_construct.cortex_client import CortexClient
from cortex_construct.llm_client import ChatCompletionClient
from cortex_construct.services.construct import ConstructService


def build_pdf(pages: Sequence[str]) -> bytes:
    """Return a minimal multi-page PDF with one Helvetica text line per page."""

    kids = " ".join(f"{4 + 2 * index} 0 R" for index in range(len(pages)))
    objects: List[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {len(pages)} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for index, text in enumerate(pages):
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Contents {5 + 2 * index} 0 R /Resources << /Font << /F1 3 0 R >> >> >>"
            ).encode()
        )
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 12 Tf 72 700 Td ({escaped}) Tj ET".encode("latin-1") if text else b""
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")

    out = bytearray(b"%PDF-1.4\n")
    offsets: List[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"
    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n"
    ).encode()
    return bytes(out)


@pytest.fixture
def pdf_bytes() -> bytes:
    return build_pdf(["Hello PDF", "", "Second page text"])


@pytest.fixture
def settings() -> Settings:
    return Settings(
        cortex_api_key="cortex-test-key",
        cortex_base_url="https://cortex.test",
        tenant_id="tenant_1234",
        openai_api_key="sk-test",
        openai_base_url="https://openai.test/v1",
        poll_base_delay_seconds=0.001,
        poll_max_delay_seconds=0.004,
    )


@dataclass
class FakeCortexAPI:
    """Scriptable stand-in for the Cortex HTTP API behind ``httpx.MockTransport``."""

    file_id: str = "file-123"
    statuses: List[str] = field(default_factory=lambda: ["completed"])
    search_results: List[Dict[str, Any]] = field(default_factory=list)
    failures: Dict[str, httpx.Response] = field(default_factory=dict)
    requests: List[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failures:
            return self.failures[path]
        if path == "/upload/upload_document":
            return httpx.Response(200, json={"file_id": self.file_id, "message": "queued", "success": True})
        if path == "/upload/verify_processing":
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(
                200,
                json={
                    "file_id": request.url.params.get("file_id"),
                    "indexing_status": status,
                    "message": f"status {status}",
                },
            )
        if path == "/search/retrieve":
            return httpx.Response(200, json=self.search_results)
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]


@dataclass
class FakeOpenAIAPI:
    answer: str = "The agreement lasts two years (p.2)."
    status_code: int = 200
    requests: List[Dict[str, Any]] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="rate limited")
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": self.answer}}]})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def cortex_api() -> FakeCortexAPI:
    return FakeCortexAPI()


@pytest.fixture
def openai_api() -> FakeOpenAIAPI:
    return FakeOpenAIAPI()


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def make_service(
    settings: Settings, cortex_api: FakeCortexAPI, openai_api: FakeOpenAIAPI
) -> Callable[..., ConstructService]:
    def _factory(**overrides: Any) -> ConstructService:
        service_settings = overrides.pop("settings", settings)
        kwargs: Dict[str, Any] = {
            "settings": service_settings,
            "cortex_factory": lambda: CortexClient.from_settings(
                service_settings, transport=cortex_api.transport
            ),
            "llm_factory": lambda: ChatCompletionClient.from_settings(
                service_settings, transport=openai_api.transport
            ),
            "sleep": _no_sleep,
        }
        kwargs.update(overrides)
        return ConstructService(**kwargs)

    return _factory
