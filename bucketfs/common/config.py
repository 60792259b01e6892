from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_STORAGE_ROOT = "./data"
DEFAULT_REGION = "us-east-1"
DEFAULT_LIST_MAX_KEYS = 1000


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    STORAGE_ROOT: str = DEFAULT_STORAGE_ROOT
    S3_REGION: str = DEFAULT_REGION
    LIST_MAX_KEYS: int = DEFAULT_LIST_MAX_KEYS
    AUTH_ENABLED: bool = False
    AUTH_ACCESS_KEY: str | None = None
    AUTH_SECRET_KEY: str | None = None
    ENABLE_METRICS: bool = True
    TRACE_HTTP: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)
    HOST: str = "0.0.0.0"
    PORT: int = 9090

    def __post_init__(self) -> None:
        if not (self.STORAGE_ROOT or "").strip():
            raise ValueError("STORAGE_ROOT must point to a directory.")
        if self.LIST_MAX_KEYS <= 0:
            raise ValueError("LIST_MAX_KEYS must be a positive integer.")
        if self.LOG_FORMAT not in {"json", "plain"}:
            raise ValueError("LOG_FORMAT must be 'json' or 'plain'.")

    @property
    def storage_root_path(self) -> Path:
        return Path(self.STORAGE_ROOT).expanduser()

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            STORAGE_ROOT=os.environ.get("STORAGE_ROOT", cls.STORAGE_ROOT),
            S3_REGION=os.environ.get("S3_REGION", cls.S3_REGION),
            LIST_MAX_KEYS=int(os.environ.get("LIST_MAX_KEYS", cls.LIST_MAX_KEYS)),
            AUTH_ENABLED=_as_bool(os.environ.get("AUTH_ENABLED"), cls.AUTH_ENABLED),
            AUTH_ACCESS_KEY=os.environ.get("AUTH_ACCESS_KEY"),
            AUTH_SECRET_KEY=os.environ.get("AUTH_SECRET_KEY"),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            TRACE_HTTP=_as_bool(os.environ.get("TRACE_HTTP"), cls.TRACE_HTTP),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            LOG_FORMAT=os.environ.get("LOG_FORMAT", cls.LOG_FORMAT).lower(),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
            HOST=os.environ.get("HOST", cls.HOST),
            PORT=int(os.environ.get("PORT", cls.PORT)),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
