"""Filesystem-backed object store.

Buckets are directories directly below the storage root and objects are
regular files inside them. The directory tree is the only index: there is no
metadata sidecar and no in-process locking, so concurrent requests are
arbitrated by the filesystem alone (exclusive file creation on upload).
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import shutil
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator

from bucketfs.infra.storage.chunked import is_streaming_payload, write_payload
from bucketfs.infra.storage.client import (
    BucketInfo,
    BucketNotFoundError,
    MalformedStreamError,
    ObjectInfo,
    ObjectListing,
    ObjectNotFoundError,
    StorageIOError,
    StoredObject,
)
from bucketfs.infra.storage.paths import PathResolver

log = logging.getLogger("storage")


def _mtime(stat_result: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)


class _HashingWriter:
    """File wrapper that tracks size and MD5 of everything written."""

    def __init__(self, handle: BinaryIO):
        self._handle = handle
        self._md5 = hashlib.md5()
        self.size = 0

    def write(self, data: bytes) -> int:
        self._md5.update(data)
        self.size += len(data)
        return self._handle.write(data)

    @property
    def etag(self) -> str:
        return self._md5.hexdigest()


class FileSystemObjectStore:
    """Object store rooted at a directory.

    Args:
        root: Storage root; each bucket is a directory below it.
        resolver: Optional path resolver, mainly for tests.
    """

    def __init__(self, root: str | os.PathLike[str], *, resolver: PathResolver | None = None):
        self._resolver = resolver or PathResolver(root)
        self.root = self._resolver.root

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(f"cannot create storage root {self.root}: {exc}") from exc

    # ----- buckets -----

    def create_bucket(self, bucket: str) -> None:
        path = self._resolver.bucket_path(bucket)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.error("bucket.create err bucket=%s error=%s", bucket, exc)
            raise StorageIOError(f"failed to create bucket '{bucket}': {exc}") from exc
        log.info("bucket.create ok bucket=%s", bucket)

    def bucket_exists(self, bucket: str) -> bool:
        path = self._resolver.bucket_path(bucket)
        try:
            st = path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as exc:
            raise StorageIOError(f"failed to check bucket '{bucket}': {exc}") from exc
        return stat.S_ISDIR(st.st_mode)

    def list_buckets(self) -> list[BucketInfo]:
        buckets: list[BucketInfo] = []
        try:
            entries = sorted(os.scandir(self.root), key=lambda e: e.name)
        except OSError as exc:
            log.warning("bucket.list err root=%s error=%s", self.root, exc)
            return buckets

        for entry in entries:
            try:
                if not entry.is_dir():
                    continue
                created = _mtime(entry.stat())
            except OSError:
                created = datetime.now(timezone.utc)
            buckets.append(BucketInfo(name=entry.name, creation_date=created))
        return buckets

    def delete_bucket(self, bucket: str) -> None:
        path = self._resolver.bucket_path(bucket)
        if not path.is_dir():
            log.info("bucket.delete missing bucket=%s", bucket)
            raise BucketNotFoundError(bucket)
        try:
            shutil.rmtree(path)
        except FileNotFoundError as exc:
            raise BucketNotFoundError(bucket) from exc
        except OSError as exc:
            log.error("bucket.delete err bucket=%s error=%s", bucket, exc)
            raise StorageIOError(f"failed to delete bucket '{bucket}': {exc}") from exc
        log.info("bucket.delete ok bucket=%s", bucket)

    # ----- objects -----

    def add_object(
        self,
        bucket: str,
        key: str,
        stream: BinaryIO,
        content_sha256: str | None = None,
    ) -> StoredObject:
        if not self.bucket_exists(bucket):
            raise BucketNotFoundError(bucket)

        stored_key, path, handle = self._create_exclusive(bucket, key)
        if stored_key != key:
            log.info(
                "object.put renamed bucket=%s key=%s stored_key=%s",
                bucket,
                key,
                stored_key,
            )

        writer = _HashingWriter(handle)
        try:
            with handle:
                write_payload(stream, writer, content_sha256)
        except MalformedStreamError:
            self._discard(path)
            log.warning("object.put malformed_stream bucket=%s key=%s", bucket, key)
            raise
        except OSError as exc:
            self._discard(path)
            log.error("object.put err bucket=%s key=%s error=%s", bucket, key, exc)
            raise StorageIOError(f"failed to write object '{key}': {exc}") from exc

        try:
            last_modified = _mtime(path.stat())
        except OSError as exc:
            raise StorageIOError(f"failed to stat object '{stored_key}': {exc}") from exc

        log.info(
            "object.put ok bucket=%s key=%s size=%s chunked=%s",
            bucket,
            stored_key,
            writer.size,
            is_streaming_payload(content_sha256),
        )
        return StoredObject(
            bucket=bucket,
            requested_key=key,
            key=stored_key,
            size=writer.size,
            etag=writer.etag,
            last_modified=last_modified,
        )

    def _create_exclusive(self, bucket: str, key: str) -> tuple[str, Path, BinaryIO]:
        # Every rename candidate shares the parent directory of ``key``.
        parent = self._resolver.resolve(bucket, key).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except (FileExistsError, NotADirectoryError) as exc:
            log.warning(
                "object.put parent_is_object bucket=%s key=%s error=%s", bucket, key, exc
            )
            raise StorageIOError(
                f"cannot store '{key}': a parent of the key is an existing object"
            ) from exc
        except OSError as exc:
            log.error("object.put err bucket=%s key=%s error=%s", bucket, key, exc)
            raise StorageIOError(f"failed to create object path for '{key}': {exc}") from exc

        # unique_path only probes; "x" mode makes the loser of a race with a
        # concurrent writer move on to the next free name instead of overwriting.
        while True:
            candidate, path = self._resolver.unique_path(bucket, key)
            try:
                return candidate, path, open(path, "xb")
            except FileExistsError:
                continue
            except OSError as exc:
                log.error("object.put err bucket=%s key=%s error=%s", bucket, key, exc)
                raise StorageIOError(f"failed to create object '{candidate}': {exc}") from exc

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:  # pragma: no cover - best effort cleanup
            log.warning("object.cleanup err path=%s error=%s", path, exc)

    def object_exists(self, bucket: str, key: str) -> ObjectInfo | None:
        path = self._resolver.resolve(bucket, key)
        try:
            st = path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as exc:
            log.error("object.head err bucket=%s key=%s error=%s", bucket, key, exc)
            raise StorageIOError(f"failed to check object '{key}': {exc}") from exc
        if not path.is_file():
            return None
        return ObjectInfo(key=key, size=st.st_size, last_modified=_mtime(st))

    def get_object(self, bucket: str, key: str) -> ObjectInfo:
        info = self.object_exists(bucket, key)
        if info is None:
            raise ObjectNotFoundError(bucket, key)
        return info

    def open_object(self, bucket: str, key: str) -> BinaryIO:
        path = self._resolver.resolve(bucket, key)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise ObjectNotFoundError(bucket, key) from exc
        except OSError as exc:
            raise StorageIOError(f"failed to open object '{key}': {exc}") from exc

    def delete_object(self, bucket: str, key: str) -> None:
        path = self._resolver.resolve(bucket, key)
        if not path.is_file():
            log.info("object.delete missing bucket=%s key=%s", bucket, key)
            raise ObjectNotFoundError(bucket, key)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(bucket, key) from exc
        except OSError as exc:
            log.error("object.delete err bucket=%s key=%s error=%s", bucket, key, exc)
            raise StorageIOError(f"failed to delete object '{key}': {exc}") from exc
        self._prune_empty_parents(bucket, path)
        log.info("object.delete ok bucket=%s key=%s", bucket, key)

    def _prune_empty_parents(self, bucket: str, path: Path) -> None:
        bucket_path = self._resolver.bucket_path(bucket)
        parent = path.parent
        while parent != bucket_path and bucket_path in parent.parents:
            try:
                parent.rmdir()
            except OSError as exc:
                if exc.errno in (errno.ENOTEMPTY, errno.EEXIST, errno.ENOENT):
                    return
                raise StorageIOError(f"failed to prune '{parent}': {exc}") from exc
            parent = parent.parent

    def _walk(self, bucket: str) -> Iterator[tuple[str, os.stat_result]]:
        bucket_path = self._resolver.bucket_path(bucket)

        def on_error(exc: OSError) -> None:
            raise exc

        for dirpath, _, filenames in os.walk(bucket_path, onerror=on_error):
            for name in filenames:
                full = Path(dirpath) / name
                try:
                    st = full.stat()
                except FileNotFoundError:
                    # removed between the directory read and the stat
                    continue
                yield self._resolver.relative_key(bucket, full), st

    def list_objects(
        self,
        bucket: str,
        *,
        prefix: str = "",
        marker: str = "",
        max_keys: int = 1000,
    ) -> ObjectListing:
        if not self.bucket_exists(bucket):
            raise BucketNotFoundError(bucket)

        try:
            matches = sorted(
                (
                    (key, st)
                    for key, st in self._walk(bucket)
                    if key.startswith(prefix) and (not marker or key > marker)
                ),
                key=lambda item: item[0],
            )
        except OSError as exc:
            log.error("object.list err bucket=%s error=%s", bucket, exc)
            raise StorageIOError(f"error while listing objects: {exc}") from exc

        page = matches[:max_keys]
        is_truncated = len(matches) > len(page)
        contents = [
            ObjectInfo(key=key, size=st.st_size, last_modified=_mtime(st))
            for key, st in page
        ]
        return ObjectListing(
            bucket=bucket,
            prefix=prefix,
            marker=marker,
            max_keys=max_keys,
            contents=contents,
            is_truncated=is_truncated,
            next_marker=contents[-1].key if is_truncated and contents else None,
        )
