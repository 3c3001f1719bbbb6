"""Tests for CardDavDbSettings."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from carddav_db.migrations.runner import DEFAULT_SCRIPT_DIR
from carddav_db.settings import CardDavDbSettings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No CARDDAV_DB_* variables or .env file leak into these tests."""
    for key in list(os.environ):
        if key.startswith("CARDDAV_DB_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = CardDavDbSettings()
        assert settings.backend == "sqlite"
        assert settings.sqlite_path == ":memory:"
        assert settings.table_prefix == ""
        assert settings.migrations_dir == DEFAULT_SCRIPT_DIR
        assert settings.effective_port is None


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CARDDAV_DB_BACKEND", " Postgres ")
        monkeypatch.setenv("CARDDAV_DB_TABLE_PREFIX", "rc_")
        monkeypatch.setenv("CARDDAV_DB_MIGRATIONS_DIR", "/srv/dbmigrations")

        settings = CardDavDbSettings()

        assert settings.backend == "postgres"
        assert settings.table_prefix == "rc_"
        assert settings.migrations_dir == Path("/srv/dbmigrations")
        assert settings.effective_port == 5432

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("CARDDAV_DB_BACKEND=mysql\nCARDDAV_DB_PORT=3307\n")
        settings = CardDavDbSettings()
        assert settings.backend == "mysql"
        assert settings.effective_port == 3307


class TestValidation:
    def test_log_format(self):
        assert CardDavDbSettings(log_format="JSON").log_format == "json"
        with pytest.raises(ValidationError):
            CardDavDbSettings(log_format="xml")


class TestCache:
    def test_cached_until_forced(self, monkeypatch):
        monkeypatch.setattr("carddav_db.settings._settings_cache", {})
        first = get_settings()
        monkeypatch.setenv("CARDDAV_DB_BACKEND", "mysql")

        assert get_settings() is first
        assert get_settings(_force_reload=True).backend == "mysql"
