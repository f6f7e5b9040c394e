"""Environment driven configuration for the construct service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_CORTEX_BASE_URL = "https://api.usecortex.ai"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TENANT_ID = "tenant_1234"


def _str_from_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(slots=True, frozen=True)
class Settings:
    """Resolved runtime settings."""

    cortex_api_key: Optional[str] = None
    cortex_base_url: str = DEFAULT_CORTEX_BASE_URL
    tenant_id: str = DEFAULT_TENANT_ID
    sub_tenant_id: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.2
    http_timeout_seconds: float = 60.0
    poll_base_delay_seconds: float = 1.0
    poll_max_delay_seconds: float = 16.0
    poll_max_attempts: int = 0
    session_max_count: int = 256
    session_idle_ttl_seconds: float = 3600.0
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            cortex_api_key=_str_from_env("CORTEX_API_KEY"),
            cortex_base_url=_str_from_env("CORTEX_BASE_URL", DEFAULT_CORTEX_BASE_URL) or DEFAULT_CORTEX_BASE_URL,
            tenant_id=_str_from_env("TENANT_ID", DEFAULT_TENANT_ID) or DEFAULT_TENANT_ID,
            sub_tenant_id=_str_from_env("SUB_TENANT_ID"),
            openai_api_key=_str_from_env("OPENAI_API_KEY"),
            openai_base_url=_str_from_env("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL) or DEFAULT_OPENAI_BASE_URL,
            openai_model=_str_from_env("OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
            llm_temperature=_float_from_env("LLM_TEMPERATURE", 0.2),
            http_timeout_seconds=_float_from_env("HTTP_TIMEOUT_SECONDS", 60.0),
            poll_base_delay_seconds=_float_from_env("POLL_BASE_DELAY_SECONDS", 1.0),
            poll_max_delay_seconds=_float_from_env("POLL_MAX_DELAY_SECONDS", 16.0),
            poll_max_attempts=_int_from_env("POLL_MAX_ATTEMPTS", 0),
            session_max_count=_int_from_env("SESSION_MAX_COUNT", 256),
            session_idle_ttl_seconds=_float_from_env("SESSION_IDLE_TTL_SECONDS", 3600.0),
            environment=(_str_from_env("ENVIRONMENT", "development") or "development").lower(),
        )

    @property
    def is_production(self) -> bool:
        return self.environment in {"prod", "production"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """FastAPI dependency returning settings resolved from the environment."""

    return Settings.from_env()


__all__ = ["Settings", "get_settings"]
