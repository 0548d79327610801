"""Tests for environment-driven settings."""

import pytest

from storefront.config import Settings, get_settings


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    def test_required_values_come_from_environment(self, fresh_settings):
        settings = get_settings()
        assert settings.DATABASE_URL == "sqlite://"
        assert settings.SECRET_KEY
        assert settings.missing() == []

    def test_missing_secret_key_fails_fast(self, fresh_settings, monkeypatch):
        monkeypatch.setattr(Settings, "SECRET_KEY", None)
        with pytest.raises(RuntimeError, match="SECRET_KEY"):
            get_settings()

    def test_missing_database_url_fails_fast(self, fresh_settings, monkeypatch):
        monkeypatch.setattr(Settings, "DATABASE_URL", "")
        with pytest.raises(RuntimeError, match="DATABASE_URL"):
            get_settings()

    def test_lists_every_missing_value(self, monkeypatch):
        monkeypatch.setattr(Settings, "DATABASE_URL", None)
        monkeypatch.setattr(Settings, "SECRET_KEY", None)
        assert Settings().missing() == ["DATABASE_URL", "SECRET_KEY"]
