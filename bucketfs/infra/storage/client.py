"""Object store protocol, data types and error taxonomy.

This module defines the interface the gateway consumes, independent of how
buckets and objects are persisted. The filesystem-backed implementation lives
in :mod:`bucketfs.infra.storage.filesystem`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Protocol


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class NotFoundError(StorageError):
    """Base class for missing buckets and objects."""


class BucketNotFoundError(NotFoundError):
    def __init__(self, bucket: str):
        super().__init__(f"Bucket '{bucket}' does not exist")
        self.bucket = bucket


class ObjectNotFoundError(NotFoundError):
    def __init__(self, bucket: str, key: str):
        super().__init__(f"Object '{key}' not found in bucket '{bucket}'")
        self.bucket = bucket
        self.key = key


class InvalidNameError(StorageError):
    """Raised when a bucket name or object key cannot be mapped safely."""

    def __init__(self, message: str, *, kind: str = "key"):
        super().__init__(message)
        self.kind = kind


class MalformedStreamError(StorageError):
    """Raised when an aws-chunked upload body violates its framing."""


class StorageIOError(StorageError):
    """Raised on filesystem failures other than "does not exist"."""


@dataclass(frozen=True, slots=True)
class BucketInfo:
    """A bucket as reported by the store."""

    name: str
    creation_date: datetime


@dataclass(frozen=True, slots=True)
class ObjectInfo:
    """Metadata of a stored object."""

    key: str
    size: int
    last_modified: datetime


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Result of writing an object.

    ``key`` is the key the payload was actually stored under, which differs
    from the requested key when a same-named object already existed.
    """

    bucket: str
    requested_key: str
    key: str
    size: int
    etag: str
    last_modified: datetime

    @property
    def renamed(self) -> bool:
        return self.key != self.requested_key


@dataclass(frozen=True, slots=True)
class ObjectListing:
    """One page of objects matching a prefix."""

    bucket: str
    prefix: str
    marker: str
    max_keys: int
    contents: list[ObjectInfo] = field(default_factory=list)
    is_truncated: bool = False
    next_marker: str | None = None


class ObjectStore(Protocol):
    """Protocol defining bucket and object lifecycle operations."""

    def create_bucket(self, bucket: str) -> None:
        """Create the bucket (including missing parents).

        Raises:
            StorageIOError: If the directory cannot be created.
        """
        ...

    def bucket_exists(self, bucket: str) -> bool:
        ...

    def list_buckets(self) -> list[BucketInfo]:
        """List buckets; read failures yield an empty list."""
        ...

    def delete_bucket(self, bucket: str) -> None:
        """Remove the bucket and everything in it.

        Raises:
            BucketNotFoundError: If the bucket does not exist.
            StorageIOError: If the removal fails.
        """
        ...

    def add_object(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        content_sha256: str | None = None,
    ) -> StoredObject:
        """Persist ``stream`` under ``key`` or a renamed free key.

        Args:
            bucket: Target bucket name.
            key: Requested object key.
            stream: Raw or aws-chunked request body.
            content_sha256: Value of ``X-Amz-Content-Sha256``; selects the
                chunked decoder when it carries the streaming sentinel.

        Raises:
            BucketNotFoundError: If the bucket does not exist.
            MalformedStreamError: If a chunked body is malformed.
            StorageIOError: If the file cannot be created or written.
        """
        ...

    def get_object(self, bucket: str, key: str) -> ObjectInfo:
        """Return object metadata, raising ObjectNotFoundError when absent."""
        ...

    def open_object(self, bucket: str, key: str) -> BinaryIO:
        ...

    def object_exists(self, bucket: str, key: str) -> ObjectInfo | None:
        """Return metadata, or None when the object is absent."""
        ...

    def delete_object(self, bucket: str, key: str) -> None:
        ...

    def list_objects(
        self,
        bucket: str,
        *,
        prefix: str = "",
        marker: str = "",
        max_keys: int = 1000,
    ) -> ObjectListing:
        ...
