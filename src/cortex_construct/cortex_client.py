"""Async client for the Cortex document upload, verification and search API."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .config import Settings
from .errors import ConfigurationError, UpstreamHTTPError
from .models import IndexingStatus, UploadResult
from .upstream import build_async_client, json_body, send_request

LOGGER = logging.getLogger(__name__)

SERVICE_NAME = "Cortex"
DEFAULT_ALPHA = 0.8
DEFAULT_RECENCY_BIAS = 0.0


class CortexClient:
    """Thin wrapper around the Cortex REST endpoints used by the demo."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        default_tenant_id: Optional[str] = None,
        default_sub_tenant_id: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Server misconfiguration: CORTEX_API_KEY is not set")
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_tenant_id = default_tenant_id
        self.default_sub_tenant_id = default_sub_tenant_id
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "CortexClient":
        return cls(
            settings.cortex_api_key or "",
            base_url=settings.cortex_base_url,
            default_tenant_id=settings.tenant_id,
            default_sub_tenant_id=settings.sub_tenant_id,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return build_async_client(
            base_url=self.base_url,
            api_key=self._api_key,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _tenant(self, tenant_id: Optional[str]) -> Optional[str]:
        return tenant_id or self.default_tenant_id

    def _sub_tenant(self, sub_tenant_id: Optional[str]) -> Optional[str]:
        return sub_tenant_id or self.default_sub_tenant_id

    async def upload_document(
        self,
        file_name: str,
        data: bytes,
        *,
        content_type: str = "application/pdf",
        tenant_id: Optional[str] = None,
        sub_tenant_id: Optional[str] = None,
        tenant_metadata: Optional[str] = None,
        document_metadata: Optional[str] = None,
    ) -> UploadResult:
        """Forward a document to Cortex for indexing."""

        params: dict[str, str] = {}
        tenant = self._tenant(tenant_id)
        sub_tenant = self._sub_tenant(sub_tenant_id)
        if tenant:
            params["tenant_id"] = tenant
        if sub_tenant:
            params["sub_tenant_id"] = sub_tenant

        form: dict[str, str] = {}
        if tenant_metadata:
            form["tenant_metadata"] = tenant_metadata
        if document_metadata:
            form["document_metadata"] = document_metadata

        files = {"file": (file_name or "document.pdf", data, content_type or "application/pdf")}
        async with self._client() as client:
            response = await send_request(
                client,
                SERVICE_NAME,
                "POST",
                "/upload/upload_document",
                params=params,
                data=form,
                files=files,
            )
        payload = json_body(response, SERVICE_NAME)
        if not isinstance(payload, dict) or not payload.get("file_id"):
            raise UpstreamHTTPError(SERVICE_NAME, 502, f"Upload response missing file_id: {response.text[:200]}")

        LOGGER.info("Uploaded %s to Cortex as %s", file_name, payload["file_id"])
        success = payload.get("success")
        return UploadResult(
            file_id=str(payload["file_id"]),
            message=str(payload.get("message") or ""),
            success=success if isinstance(success, bool) else None,
        )

    async def verify_processing(self, file_id: str, *, tenant_id: Optional[str] = None) -> IndexingStatus:
        """Ask Cortex for the indexing status of ``file_id``."""

        params = {"file_id": file_id}
        tenant = self._tenant(tenant_id)
        if tenant:
            params["tenant_id"] = tenant

        async with self._client() as client:
            response = await send_request(
                client, SERVICE_NAME, "POST", "/upload/verify_processing", params=params
            )
        payload = json_body(response, SERVICE_NAME)
        if not isinstance(payload, dict):
            raise UpstreamHTTPError(SERVICE_NAME, 502, f"Unexpected verify response: {response.text[:200]}")

        success = payload.get("success")
        message = payload.get("message")
        return IndexingStatus(
            file_id=str(payload.get("file_id") or file_id),
            indexing_status=str(payload.get("indexing_status") or "unknown"),
            success=success if isinstance(success, bool) else None,
            message=str(message) if message is not None else None,
        )

    async def search(
        self,
        query: str,
        *,
        tenant_id: Optional[str] = None,
        sub_tenant_id: Optional[str] = None,
        max_chunks: Optional[int] = None,
        alpha: float = DEFAULT_ALPHA,
        recency_bias: float = DEFAULT_RECENCY_BIAS,
    ) -> list[dict[str, Any]]:
        """Run a hybrid semantic search and return the raw chunk records."""

        payload: dict[str, Any] = {
            "query": query,
            "tenant_id": self._tenant(tenant_id),
            "sub_tenant_id": self._sub_tenant(sub_tenant_id),
            "alpha": alpha,
            "recency_bias": recency_bias,
        }
        if isinstance(max_chunks, int) and not isinstance(max_chunks, bool):
            payload["max_chunks"] = max_chunks

        async with self._client() as client:
            response = await send_request(
                client, SERVICE_NAME, "POST", "/search/retrieve", json=payload
            )
        results = json_body(response, SERVICE_NAME)
        if isinstance(results, dict) and isinstance(results.get("chunks"), list):
            results = results["chunks"]
        if not isinstance(results, list):
            LOGGER.warning("Cortex search returned %s instead of a list", type(results).__name__)
            return []
        return [item for item in results if isinstance(item, dict)]


__all__ = ["CortexClient", "DEFAULT_ALPHA", "DEFAULT_RECENCY_BIAS"]
