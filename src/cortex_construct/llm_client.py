"""Chat-completion client used to synthesise answers over retrieved chunks."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from .config import Settings
from .errors import ConfigurationError
from .prompt_builder import build_messages
from .telemetry import log_event
from .upstream import build_async_client, json_body, send_request

LOGGER = logging.getLogger(__name__)

SERVICE_NAME = "OpenAI"


def extract_completion_text(payload: Any) -> str:
    """Return ``choices[0].message.content`` or an empty string."""

    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


class ChatCompletionClient:
    """Minimal OpenAI-compatible ``/chat/completions`` client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY not set")
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "ChatCompletionClient":
        return cls(
            settings.openai_api_key or "",
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            temperature=settings.llm_temperature,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        body = {"model": self.model, "messages": messages, "temperature": self.temperature}
        async with build_async_client(
            base_url=self.base_url,
            api_key=self._api_key,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await send_request(client, SERVICE_NAME, "POST", "/chat/completions", json=body)
        return extract_completion_text(json_body(response, SERVICE_NAME))

    async def answer(self, query: str, chunks: Sequence[Mapping[str, Any]]) -> str:
        """Answer ``query`` strictly from ``chunks``, citing pages inline."""

        messages = build_messages(query, chunks)
        req_id = uuid.uuid4().hex
        started = time.perf_counter()
        answer = await self.complete(messages)
        log_event(
            LOGGER,
            "answer.result",
            req_id=req_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            model=self.model,
            chunks=len(chunks),
            prompt_len=sum(len(message["content"]) for message in messages),
            answer_preview=answer[:120],
        )
        return answer


__all__ = ["ChatCompletionClient", "extract_completion_text"]
