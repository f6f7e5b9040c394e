"""Shared plumbing for calls to third-party HTTP APIs."""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from .errors import UpstreamHTTPError, UpstreamUnavailableError
from .logging_config import AUDIT_LOGGER_NAME
from .telemetry import emit_upstream_event

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


def build_async_client(
    *,
    base_url: str,
    api_key: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        headers={"Authorization": f"Bearer {api_key}"},
        timeout=timeout,
        transport=transport,
    )


async def send_request(
    client: httpx.AsyncClient,
    service: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request and translate failures into construct errors.

    Non-2xx responses raise :class:`UpstreamHTTPError` carrying the upstream
    status code and body verbatim; transport failures raise
    :class:`UpstreamUnavailableError`. Nothing is retried here.
    """

    started = time.perf_counter()
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as error:
        emit_upstream_event(
            "upstream.timeout", service=service, method=method, url=url, error=error
        )
        raise UpstreamUnavailableError(service, f"{service} request timed out", cause=error) from error
    except httpx.RequestError as error:
        emit_upstream_event(
            "upstream.unreachable", service=service, method=method, url=url, error=error
        )
        raise UpstreamUnavailableError(service, f"{service} is unreachable: {error}", cause=error) from error

    duration_ms = (time.perf_counter() - started) * 1000.0
    emit_upstream_event(
        "upstream.response",
        service=service,
        method=method,
        url=url,
        status_code=response.status_code,
        duration_ms=duration_ms,
    )
    AUDIT_LOGGER.info(
        {
            "event": "upstream_call",
            "service": service,
            "path": response.request.url.path,
            "status_code": response.status_code,
        }
    )

    if not response.is_success:
        LOGGER.warning("%s answered HTTP %s", service, response.status_code)
        raise UpstreamHTTPError(service, response.status_code, response.text)
    return response


def json_body(response: httpx.Response, service: str) -> Any:
    try:
        return response.json()
    except ValueError as error:
        raise UpstreamHTTPError(service, 502, f"Invalid JSON from {service}: {response.text[:200]}") from error


__all__ = ["build_async_client", "json_body", "send_request"]
