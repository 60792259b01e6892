from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any

LOG_FORMATS = ("json", "plain")
# Loggers used by the gateway layers; each honours the configured level.
DOMAIN_LOGGERS = ("http", "gateway", "storage", "auth")
STARTUP_LOGGER = "bucketfs.startup"


def build_logging_config(level: str = "INFO", fmt: str = "json") -> dict[str, Any]:
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unsupported log format {fmt!r}; expected one of {LOG_FORMATS}")
    level = level.upper()
    loggers: dict[str, Any] = {
        name: {"level": level, "handlers": [], "propagate": True}
        for name in DOMAIN_LOGGERS
    }
    # startup banner stays human readable whatever the access-log format is
    loggers[STARTUP_LOGGER] = {
        "handlers": ["startup_console"],
        "level": "INFO",
        "propagate": False,
    }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": fmt},
            "startup_console": {"class": "logging.StreamHandler", "formatter": "plain"},
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": loggers,
    }


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    dictConfig(build_logging_config(level, fmt))


class JsonFormatter(logging.Formatter):
    """One JSON object per line; fields passed as ``extra={"extra": {...}}`` are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
