"""Exceptions raised when talking to upstream services or parsing uploads."""
from __future__ import annotations


class ConstructError(RuntimeError):
    """Base class for errors surfaced by the construct service."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class ConfigurationError(ConstructError):
    """Raised when a required credential or setting is missing."""


class UpstreamHTTPError(ConstructError):
    """Raised when an upstream API answers with a non-2xx status."""

    def __init__(self, service: str, status_code: int, body: str) -> None:
        super().__init__(f"{service} returned HTTP {status_code}")
        self.service = service
        self.status_code = status_code
        self.body = body


class UpstreamUnavailableError(ConstructError):
    """Raised when an upstream API cannot be reached at all."""

    def __init__(self, service: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.service = service


class PDFExtractionError(ConstructError):
    """Raised when the uploaded PDF cannot be parsed into page text."""


class SessionNotFoundError(ConstructError):
    """Raised when a viewing session is unknown or has been discarded."""


__all__ = [
    "ConfigurationError",
    "ConstructError",
    "PDFExtractionError",
    "SessionNotFoundError",
    "UpstreamHTTPError",
    "UpstreamUnavailableError",
]
