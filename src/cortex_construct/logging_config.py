"""Application logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "cortex_construct.upstream.audit"
AUDIT_LOG_FILENAME = "upstream_audit.log"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class MinimalJSONFormatter(logging.Formatter):
    """Render each record as a single JSON object.

    Dict messages, as produced by :func:`cortex_construct.telemetry.log_event`,
    are merged into the top level instead of being stringified.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        body: dict[str, Any] = {
            "ts": self._timestamp(record),
            "level": record.levelname,
            "logger": record.name,
        }
        if isinstance(record.msg, Mapping):
            body.update(record.msg)
        else:
            body["message"] = record.getMessage()

        body.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            body["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(body, ensure_ascii=False, default=str)

    @staticmethod
    def _timestamp(record: logging.LogRecord) -> str:
        moment = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _handler_config(log_dir: Path) -> dict[str, dict[str, Any]]:
    return {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
        "upstream_audit": {
            "class": "logging.FileHandler",
            "filename": str(log_dir / AUDIT_LOG_FILENAME),
            "encoding": "utf-8",
            "formatter": "json",
        },
    }


def configure_logging(level: str = "INFO", log_dir: Path | None = None) -> None:
    """Configure JSON logging for the process.

    Upstream call audit records go to ``<log_dir>/upstream_audit.log`` and do
    not propagate to the console handler.
    """

    log_dir = Path(log_dir or "logs")
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": MinimalJSONFormatter}},
            "handlers": _handler_config(log_dir),
            "root": {"level": level.upper(), "handlers": ["console"]},
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "level": "INFO",
                    "handlers": ["upstream_audit"],
                    "propagate": False,
                },
            },
        }
    )


__all__ = ["AUDIT_LOGGER_NAME", "MinimalJSONFormatter", "configure_logging"]
