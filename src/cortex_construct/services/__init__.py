"""Service layer orchestrating upstream calls and session state."""

from .construct import ConstructService, SessionSearchResult, UploadOutcome, get_construct_service

__all__ = ["ConstructService", "SessionSearchResult", "UploadOutcome", "get_construct_service"]
