from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from bucketfs.api.deps import _store_for_root
from bucketfs.common.config import get_settings


def _reset_caches() -> None:
    get_settings.cache_clear()  # type: ignore[attr-defined]
    _store_for_root.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def storage_root(tmp_path, monkeypatch):
    root = tmp_path / "data"
    monkeypatch.setenv("STORAGE_ROOT", str(root))
    monkeypatch.setenv("AUTH_ENABLED", "false")
    monkeypatch.setenv("TRACE_HTTP", "false")
    _reset_caches()
    yield root
    _reset_caches()


@pytest.fixture()
def client(storage_root):
    from bucketfs.main import create_app

    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture()
def bucket(client):
    r = client.put("/photos")
    assert r.status_code == 200
    return "photos"


@pytest.fixture()
def upload(client):
    """PUT helper that fills in the decoded length header every upload needs."""

    def _upload(bucket: str, key: str, body: bytes, headers: dict | None = None):
        headers = dict(headers or {})
        headers.setdefault("X-Amz-Decoded-Content-Length", str(len(body)))
        return client.put(f"/{bucket}/{key}", content=body, headers=headers)

    return _upload
