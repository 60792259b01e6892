from __future__ import annotations

from bucketfs.common.config import Settings, get_settings
from bucketfs.infra.storage.client import ObjectStore


class ServiceError(Exception):
    """Base class for application service level exceptions."""


class BucketConflictError(ServiceError):
    """Raised when creating a bucket that already exists."""

    def __init__(self, bucket: str):
        super().__init__(f"Bucket '{bucket}' already exists")
        self.bucket = bucket


class MalformedRequestError(ServiceError):
    """Raised when request parameters, headers or XML bodies are invalid."""

    def __init__(self, message: str, *, code: str = "InvalidArgument"):
        super().__init__(message)
        self.code = code


class BaseService:
    """Provides the store and settings shared by application services."""

    def __init__(self, store: ObjectStore, *, settings: Settings | None = None):
        self._store = store
        self._settings = settings or get_settings()

    @property
    def store(self) -> ObjectStore:
        return self._store

    @property
    def settings(self) -> Settings:
        return self._settings
