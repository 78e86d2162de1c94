"""
Unit Tests: Settings

- значения из переменных окружения
- .env файл: неизвестные ключи игнорируются
"""

import pytest

from core.config import Settings, get_settings


def test_env_overrides_defaults(monkeypatch):
    monkeypatch.setenv("SESSION_TTL_SECONDS", "42")
    monkeypatch.setenv("DIRECT_SEND_THRESHOLD", "120")

    settings = Settings(_env_file=None)

    assert settings.session_ttl_seconds == 42
    assert settings.direct_send_threshold == 120


def test_env_file_ignores_unknown_keys(tmp_path, monkeypatch):
    monkeypatch.delenv("DB_PORT", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("DB_PORT=6543\nSOME_UNKNOWN_KEY=1\n", encoding="utf-8")

    settings = Settings(_env_file=str(env_file))

    assert settings.db_port == 6543
    assert settings.db_config["port"] == 6543
    assert not hasattr(settings, "some_unknown_key")


def test_invalid_env_value_is_rejected(monkeypatch):
    monkeypatch.setenv("MIN_EDIT_INTERVAL", "часто")

    with pytest.raises(ValueError):
        Settings(_env_file=None)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
