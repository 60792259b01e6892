from __future__ import annotations

import os
from itertools import count
from pathlib import Path, PurePosixPath
from typing import Iterator

from bucketfs.infra.storage.client import InvalidNameError


def validate_bucket_name(bucket: str) -> str:
    if not bucket or not bucket.strip():
        raise InvalidNameError("Bucket name cannot be empty", kind="bucket")
    if bucket in {".", ".."}:
        raise InvalidNameError(f"Invalid bucket name {bucket!r}", kind="bucket")
    for forbidden in ("/", "\\", "\x00"):
        if forbidden in bucket:
            raise InvalidNameError(
                f"Bucket name contains forbidden character {forbidden!r}",
                kind="bucket",
            )
    return bucket


def validate_object_key(key: str) -> str:
    if not key:
        raise InvalidNameError("Object key cannot be empty")
    if "\x00" in key or "\\" in key:
        raise InvalidNameError("Object key contains a forbidden character")
    if key.startswith("/"):
        raise InvalidNameError("Object key cannot be an absolute path")
    parts = PurePosixPath(key).parts
    if ".." in parts or not parts:
        raise InvalidNameError("Object key cannot traverse outside its bucket")
    return key


def split_extension(key: str) -> tuple[str, str]:
    """Split ``key`` into (stem, extension) on the last dot of its final segment."""
    head, sep, name = key.rpartition("/")
    stem, ext = os.path.splitext(name)
    if not stem:
        # dotfiles such as ".env" have no extension
        stem, ext = name, ""
    return f"{head}{sep}{stem}", ext


class PathResolver:
    """Maps (bucket, key) names onto paths below the storage root."""

    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root).resolve()

    def bucket_path(self, bucket: str) -> Path:
        validate_bucket_name(bucket)
        return self._contain(self.root / bucket, kind="bucket")

    def resolve(self, bucket: str, key: str) -> Path:
        validate_object_key(key)
        return self._contain(self.bucket_path(bucket) / key, kind="key")

    def candidate_keys(self, key: str) -> Iterator[str]:
        """Yield ``key`` followed by ``stem-1.ext``, ``stem-2.ext``, ..."""
        yield key
        stem, ext = split_extension(key)
        for suffix in count(1):
            yield f"{stem}-{suffix}{ext}"

    def unique_path(self, bucket: str, key: str) -> tuple[str, Path]:
        """Return the first candidate (key, path) not currently occupied.

        The probe is not atomic; callers create the file exclusively and retry.
        """
        for candidate in self.candidate_keys(key):
            path = self.resolve(bucket, candidate)
            if not os.path.lexists(path):
                return candidate, path
        raise AssertionError("unreachable")  # pragma: no cover

    def relative_key(self, bucket: str, path: Path) -> str:
        return path.relative_to(self.bucket_path(bucket)).as_posix()

    def _contain(self, path: Path, *, kind: str) -> Path:
        # Resolve without requiring existence so symlinked escapes are caught too.
        resolved = path.resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise InvalidNameError("Path escapes the storage root", kind=kind)
        return path
