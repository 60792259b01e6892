"""Tests for bucket/key to filesystem path mapping."""

from __future__ import annotations

from itertools import islice

import pytest

from bucketfs.infra.storage.client import InvalidNameError
from bucketfs.infra.storage.paths import PathResolver, split_extension


@pytest.fixture()
def resolver(tmp_path):
    return PathResolver(tmp_path)


class TestResolve:
    def test_joins_bucket_and_key_under_root(self, resolver, tmp_path):
        assert resolver.resolve("b", "dir/file.txt") == tmp_path.resolve() / "b" / "dir" / "file.txt"

    def test_bucket_path(self, resolver, tmp_path):
        assert resolver.bucket_path("b") == tmp_path.resolve() / "b"

    @pytest.mark.parametrize("bucket", ["", ".", "..", "a/b", "a\\b", "a\x00b"])
    def test_rejects_unsafe_bucket_names(self, resolver, bucket):
        with pytest.raises(InvalidNameError) as exc_info:
            resolver.bucket_path(bucket)
        assert exc_info.value.kind == "bucket"

    @pytest.mark.parametrize(
        "key",
        ["", "/etc/passwd", "../other/file", "a/../../b", "a\\b", "a\x00b"],
    )
    def test_rejects_unsafe_keys(self, resolver, key):
        with pytest.raises(InvalidNameError) as exc_info:
            resolver.resolve("b", key)
        assert exc_info.value.kind == "key"

    def test_rejects_symlink_escaping_root(self, resolver, tmp_path):
        outside = tmp_path.parent / f"{tmp_path.name}-outside"
        outside.mkdir()
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "link").symlink_to(outside, target_is_directory=True)
        with pytest.raises(InvalidNameError):
            resolver.resolve("b", "link/secret.txt")

    def test_relative_key_inverts_resolve(self, resolver):
        path = resolver.resolve("b", "nested/deep/key.bin")
        assert resolver.relative_key("b", path) == "nested/deep/key.bin"


class TestUniquePath:
    def test_free_key_is_used_as_is(self, resolver):
        key, path = resolver.unique_path("b", "report.pdf")
        assert key == "report.pdf"
        assert path == resolver.resolve("b", "report.pdf")

    def test_taken_key_gets_numbered_suffix(self, resolver, tmp_path):
        bucket_dir = tmp_path / "b"
        bucket_dir.mkdir()
        (bucket_dir / "report.pdf").write_bytes(b"1")
        (bucket_dir / "report-1.pdf").write_bytes(b"2")

        key, path = resolver.unique_path("b", "report.pdf")

        assert key == "report-2.pdf"
        assert path == resolver.resolve("b", "report-2.pdf")

    def test_key_without_extension(self, resolver, tmp_path):
        (tmp_path / "b").mkdir()
        (tmp_path / "b" / "o1").write_bytes(b"")
        assert resolver.unique_path("b", "o1")[0] == "o1-1"

    def test_candidate_sequence(self, resolver):
        candidates = list(islice(resolver.candidate_keys("dir/a.tar.gz"), 4))
        assert candidates == ["dir/a.tar.gz", "dir/a.tar-1.gz", "dir/a.tar-2.gz", "dir/a.tar-3.gz"]


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("photo.jpg", ("photo", ".jpg")),
        ("noext", ("noext", "")),
        (".env", (".env", "")),
        ("dir.d/file", ("dir.d/file", "")),
        ("dir/file.txt", ("dir/file", ".txt")),
    ],
)
def test_split_extension(key, expected):
    assert split_extension(key) == expected
