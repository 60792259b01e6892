"""Gateway service translating S3 operations into object store calls.

The service owns the S3 semantics that sit above plain storage: conflict
detection on bucket creation, ``max-keys`` validation, the required
``X-Amz-Decoded-Content-Length`` header and partial-success batch deletes.
Routers turn its results into status codes, headers and XML documents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Iterable

from bucketfs.infra.storage.chunked import is_streaming_payload
from bucketfs.infra.storage.client import (
    BucketInfo,
    BucketNotFoundError,
    ObjectInfo,
    ObjectListing,
    ObjectNotFoundError,
    StoredObject,
)
from bucketfs.infra.storage.paths import validate_object_key
from bucketfs.services.base import BaseService, BucketConflictError, MalformedRequestError

log = logging.getLogger("gateway")

# Fixed date reported by the sub-resource stubs; buckets carry no real creation time.
STUB_CREATION_DATE = datetime(2024, 9, 16, 10, 12, 24, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class BucketSubresource:
    """Static answer to a bucket sub-resource query (location, object-lock, delimiter)."""

    name: str
    creation_date: datetime
    location_constraint: str | None = None
    object_lock_config: str | None = None
    object_delimiter: str | None = None


@dataclass(slots=True)
class BatchDeleteResult:
    """Outcome of a multi-object delete; missing keys are not failures."""

    bucket: str
    deleted: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def parse_max_keys(raw: str | None, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise MalformedRequestError(f"Invalid max-keys value {raw!r}") from exc
    if value < 0:
        raise MalformedRequestError(f"Invalid max-keys value {raw!r}")
    return value


def parse_decoded_content_length(raw: str | None) -> int:
    """Validate the ``X-Amz-Decoded-Content-Length`` header every upload must carry."""
    if raw is None or not raw.strip():
        raise MalformedRequestError(
            "Missing X-Amz-Decoded-Content-Length header",
            code="MissingContentLength",
        )
    try:
        value = int(raw)
    except ValueError as exc:
        raise MalformedRequestError(
            f"Invalid X-Amz-Decoded-Content-Length {raw!r}"
        ) from exc
    if value < 0:
        raise MalformedRequestError(f"Invalid X-Amz-Decoded-Content-Length {raw!r}")
    return value


class GatewayService(BaseService):
    """Application service for bucket and object operations."""

    # ----- buckets -----

    def list_buckets(self) -> list[BucketInfo]:
        buckets = self.store.list_buckets()
        log.info("gateway.list_buckets count=%s", len(buckets))
        return buckets

    def create_bucket(self, bucket: str) -> BucketInfo:
        if self.store.bucket_exists(bucket):
            raise BucketConflictError(bucket)
        self.store.create_bucket(bucket)
        return BucketInfo(name=bucket, creation_date=datetime.now(timezone.utc))

    def head_bucket(self, bucket: str) -> None:
        if not self.store.bucket_exists(bucket):
            raise BucketNotFoundError(bucket)

    def delete_bucket(self, bucket: str) -> None:
        self.store.delete_bucket(bucket)

    def bucket_location(self, bucket: str) -> BucketSubresource:
        return BucketSubresource(
            name=bucket,
            creation_date=STUB_CREATION_DATE,
            location_constraint=self.settings.S3_REGION,
        )

    def bucket_object_lock(self, bucket: str) -> BucketSubresource:
        return BucketSubresource(
            name=bucket,
            creation_date=STUB_CREATION_DATE,
            object_lock_config="true",
        )

    def bucket_delimiter(self, bucket: str) -> BucketSubresource:
        return BucketSubresource(
            name=bucket,
            creation_date=STUB_CREATION_DATE,
            object_delimiter="true",
        )

    # ----- objects -----

    def list_objects(
        self,
        bucket: str,
        *,
        prefix: str | None = None,
        marker: str | None = None,
        max_keys: str | None = None,
    ) -> ObjectListing:
        limit = parse_max_keys(max_keys, self.settings.LIST_MAX_KEYS)
        listing = self.store.list_objects(
            bucket,
            prefix=prefix or "",
            marker=marker or "",
            max_keys=limit,
        )
        log.info(
            "gateway.list_objects bucket=%s prefix=%s count=%s truncated=%s",
            bucket,
            listing.prefix,
            len(listing.contents),
            listing.is_truncated,
        )
        return listing

    def put_object(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        *,
        content_sha256: str | None,
        expected_size: int,
    ) -> StoredObject:
        stored = self.store.add_object(bucket, key, stream, content_sha256)
        if stored.size != expected_size:
            log.warning(
                "gateway.put_object size_mismatch bucket=%s key=%s expected=%s actual=%s chunked=%s",
                bucket,
                stored.key,
                expected_size,
                stored.size,
                is_streaming_payload(content_sha256),
            )
        return stored

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        info = self.store.object_exists(bucket, key)
        if info is None:
            raise ObjectNotFoundError(bucket, key)
        return info

    def get_object(self, bucket: str, key: str) -> tuple[ObjectInfo, BinaryIO]:
        info = self.store.get_object(bucket, key)
        return info, self.store.open_object(bucket, key)

    def delete_object(self, bucket: str, key: str) -> None:
        self.store.delete_object(bucket, key)

    def delete_objects(self, bucket: str, keys: Iterable[str]) -> BatchDeleteResult:
        keys = list(keys)
        # One bad key rejects the whole batch before anything is removed.
        for key in keys:
            validate_object_key(key)

        result = BatchDeleteResult(bucket=bucket)
        for key in keys:
            try:
                self.store.delete_object(bucket, key)
            except ObjectNotFoundError:
                log.info("gateway.delete_objects missing bucket=%s key=%s", bucket, key)
                result.missing.append(key)
                continue
            result.deleted.append(key)
        log.info(
            "gateway.delete_objects bucket=%s deleted=%s missing=%s",
            bucket,
            len(result.deleted),
            len(result.missing),
        )
        return result
