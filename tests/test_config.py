import pytest

from bucketfs.common.config import Settings, get_settings


def test_defaults_from_environment(monkeypatch, storage_root):
    for name in ("S3_REGION", "LIST_MAX_KEYS", "ENABLE_METRICS", "PORT"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]

    settings = get_settings()

    assert settings.STORAGE_ROOT == str(storage_root)
    assert settings.S3_REGION == "us-east-1"
    assert settings.LIST_MAX_KEYS == 1000
    assert settings.ENABLE_METRICS is True
    assert settings.AUTH_ENABLED is False
    assert settings.PORT == 9090


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("S3_REGION", "ap-south-1")
    monkeypatch.setenv("LIST_MAX_KEYS", "50")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")
    monkeypatch.setenv("TRACE_HTTP", "yes")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    settings = get_settings()

    assert settings.S3_REGION == "ap-south-1"
    assert settings.LIST_MAX_KEYS == 50
    assert settings.CORS_ORIGINS == ["http://a.example", "http://b.example"]
    assert settings.TRACE_HTTP is True


def test_settings_are_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize(
    "kwargs",
    [{"STORAGE_ROOT": ""}, {"STORAGE_ROOT": "   "}, {"LIST_MAX_KEYS": 0}, {"LOG_FORMAT": "xml"}],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        Settings(**kwargs)
