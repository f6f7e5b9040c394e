"""Structured lifecycle events for uploads, extraction, polling and upstream calls."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
from pathlib import Path
from typing import Any, Optional

LOGGER = logging.getLogger("cortex_construct.telemetry")

_PUBLIC_ENV_KEYS: tuple[str, ...] = (
    "CORTEX_BASE_URL",
    "TENANT_ID",
    "SUB_TENANT_ID",
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "LLM_TEMPERATURE",
    "HTTP_TIMEOUT_SECONDS",
    "POLL_BASE_DELAY_SECONDS",
    "POLL_MAX_DELAY_SECONDS",
    "POLL_MAX_ATTEMPTS",
    "SESSION_MAX_COUNT",
    "SESSION_IDLE_TTL_SECONDS",
    "ENVIRONMENT",
)

# Credentials are only ever reported as present/absent.
_SECRET_ENV_KEYS: tuple[str, ...] = ("CORTEX_API_KEY", "OPENAI_API_KEY")


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: int = logging.INFO,
    req_id: str | None = None,
    session_id: str | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
    **details: Any,
) -> None:
    """Log ``step`` as a dict message.

    ``details`` entries whose value is ``None`` are left out. When ``error`` is
    given its traceback is attached through ``exc_info``.
    """

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if session_id:
        event["session_id"] = session_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    kept = {key: value for key, value in details.items() if value is not None}
    if kept:
        event["details"] = kept

    exc_info = None
    if error is not None:
        event["error"] = f"{type(error).__name__}: {error}"
        exc_info = (type(error), error, error.__traceback__)
    logger.log(level, event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    log_event(
        LOGGER,
        "app.startup",
        env={key: os.environ[key] for key in _PUBLIC_ENV_KEYS if key in os.environ},
        credentials={key: bool(os.getenv(key)) for key in _SECRET_ENV_KEYS},
        python=sys.version.split()[0],
        platform=platform.platform(),
        pid=os.getpid(),
        hostname=socket.gethostname(),
        cwd=str(Path.cwd()),
    )


def emit_upstream_event(
    step: str,
    *,
    service: str,
    method: str,
    url: str,
    status_code: int | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        level=logging.WARNING if error is not None else logging.INFO,
        duration_ms=duration_ms,
        error=error,
        service=service,
        method=method,
        url=url,
        status_code=status_code,
    )


def emit_extraction_event(
    step: str,
    *,
    file_name: str,
    size_bytes: int,
    pages: int | None = None,
    duration_ms: float | None = None,
    session_id: str | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        session_id=session_id,
        duration_ms=duration_ms,
        file=file_name,
        size_bytes=size_bytes,
        pages=pages,
    )


def emit_poll_event(
    *,
    file_id: str,
    attempt: int,
    status: str | None,
    next_delay_seconds: float | None,
    session_id: str | None = None,
    error: BaseException | None = None,
) -> None:
    log_event(
        LOGGER,
        "indexing.poll",
        level=logging.WARNING if error is not None else logging.INFO,
        session_id=session_id,
        error=error,
        file_id=file_id,
        attempt=attempt,
        status=status,
        next_delay_seconds=next_delay_seconds,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    session_id: str | None = None,
) -> None:
    log_event(
        LOGGER,
        "exception",
        level=logging.ERROR,
        req_id=req_id,
        session_id=session_id,
        error=error,
        source=module,
    )


__all__ = [
    "emit_app_startup_event",
    "emit_exception",
    "emit_extraction_event",
    "emit_poll_event",
    "emit_upstream_event",
    "log_event",
]
