"""Indexing status polling with exponential backoff and cancellation."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import UpstreamHTTPError, UpstreamUnavailableError
from .models import IndexingStatus
from .telemetry import emit_poll_event

LOGGER = logging.getLogger(__name__)

VerifyFn = Callable[[str], Awaitable[IndexingStatus]]
StatusCallback = Callable[[IndexingStatus], None]
SleepFn = Callable[[float], Awaitable[None]]


class CancellationToken:
    """Flag checked by a poll loop before each call and before each update."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 16.0) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based)."""

    return min(cap, base * (2 ** attempt))


class IndexingPoller:
    """Poll a verification endpoint until the document reaches a terminal state."""

    def __init__(
        self,
        verify: VerifyFn,
        *,
        base_delay: float = 1.0,
        max_delay: float = 16.0,
        max_attempts: int = 0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._verify = verify
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def poll(
        self,
        file_id: str,
        *,
        token: Optional[CancellationToken] = None,
        on_status: Optional[StatusCallback] = None,
        session_id: str | None = None,
    ) -> Optional[IndexingStatus]:
        """Poll until ``completed`` or ``failed``.

        Upstream failures are logged and retried. Returns the last status seen,
        or ``None`` when ``token`` was cancelled; a cancelled poll never calls
        ``on_status`` again.
        """

        token = token or CancellationToken()
        last: Optional[IndexingStatus] = None
        attempt = 0

        while not token.cancelled:
            error: BaseException | None = None
            status: Optional[IndexingStatus] = None
            try:
                status = await self._verify(file_id)
            except (UpstreamHTTPError, UpstreamUnavailableError) as exc:
                error = exc
                LOGGER.warning("Verification of %s failed: %s", file_id, exc)

            if token.cancelled:
                break

            if status is not None:
                last = status
                if on_status is not None:
                    on_status(status)
                if status.is_terminal:
                    emit_poll_event(
                        file_id=file_id,
                        attempt=attempt + 1,
                        status=status.indexing_status,
                        next_delay_seconds=None,
                        session_id=session_id,
                    )
                    return status

            attempt += 1
            if self.max_attempts and attempt >= self.max_attempts:
                LOGGER.info("Giving up on %s after %s attempts", file_id, attempt)
                return last

            delay = backoff_delay(attempt, self.base_delay, self.max_delay)
            emit_poll_event(
                file_id=file_id,
                attempt=attempt,
                status=status.indexing_status if status is not None else None,
                next_delay_seconds=delay,
                session_id=session_id,
                error=error,
            )
            await self._sleep(delay)

        LOGGER.info("Polling for %s cancelled", file_id)
        return None


__all__ = ["CancellationToken", "IndexingPoller", "backoff_delay"]
