"""Unit tests for Config.

Tests cover:
- Local cache location per environment
- Remote store credentials from environment variables
- The get_config singleton
"""

import logging

import pytest

from src.utils.config import Config, get_config, reset_config


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point the production data directory at a temporary home."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("MEALRUN_SUPABASE_URL", raising=False)
    monkeypatch.delenv("MEALRUN_SUPABASE_KEY", raising=False)
    monkeypatch.delenv("MEALRUN_ENV", raising=False)
    reset_config()
    yield
    reset_config()


class TestDatabaseLocation:
    def test_production_uses_documents_dir(self, tmp_path):
        config = Config()

        assert config.database_path.parent == tmp_path / "Documents" / "MealRun"
        assert config.database_path.parent.is_dir()
        assert config.is_production

    def test_database_url_is_sqlite(self):
        config = Config()
        assert config.database_url.startswith("sqlite:///")
        assert not config.database_exists()


class TestRemoteCredentials:
    def test_not_configured_by_default(self):
        config = Config()

        assert config.remote_url == ""
        assert not config.remote_configured

    def test_both_values_required(self, monkeypatch):
        monkeypatch.setenv("MEALRUN_SUPABASE_URL", "https://example.supabase.co")
        assert not Config().remote_configured

        monkeypatch.setenv("MEALRUN_SUPABASE_KEY", " anon-key ")
        config = Config()
        assert config.remote_configured
        assert config.remote_key == "anon-key"

    def test_repr_hides_key(self, monkeypatch):
        monkeypatch.setenv("MEALRUN_SUPABASE_URL", "https://example.supabase.co")
        monkeypatch.setenv("MEALRUN_SUPABASE_KEY", "secret-key")

        assert "secret-key" not in repr(Config())


class TestGetConfig:
    def test_environment_from_variable(self, monkeypatch):
        monkeypatch.setenv("MEALRUN_ENV", "production")
        assert get_config().is_production

    def test_singleton_keeps_first_environment(self, caplog):
        first = get_config("production")

        with caplog.at_level(logging.WARNING):
            second = get_config("development")

        assert second is first
        assert "already exists" in caplog.text
