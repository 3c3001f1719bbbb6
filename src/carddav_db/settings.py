"""
Settings for carddav-db.

All fields can be set via ``CARDDAV_DB_*`` environment variables (e.g.
``CARDDAV_DB_BACKEND=postgres``) or a ``.env`` file.

Tags:
    carddav-db, configuration, settings, pydantic
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from carddav_db.migrations.runner import DEFAULT_SCRIPT_DIR

_DEFAULT_PORTS = {"mysql": 3306, "postgres": 5432}


class CardDavDbSettings(BaseSettings):
    """carddav-db configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CARDDAV_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────
    backend: str = Field(default="sqlite", description="sqlite, mysql or postgres")
    sqlite_path: str = Field(default=":memory:")
    host: str = Field(default="localhost")
    port: int | None = Field(default=None, description="Defaults to the backend's standard port")
    database: str = Field(default="")
    username: str | None = Field(default=None)
    password: str | None = Field(default=None)
    connect_timeout: int = Field(default=10)

    # ── Schema ───────────────────────────────────────────────────
    table_prefix: str = Field(default="", description="Prefix of all table names")
    migrations_dir: Path = Field(default=DEFAULT_SCRIPT_DIR)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="console or json")

    @field_validator("backend")
    @classmethod
    def _lower_backend(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', not {value!r}")
        return value

    @property
    def effective_port(self) -> int | None:
        return self.port if self.port is not None else _DEFAULT_PORTS.get(self.backend)


_settings_cache: dict[str, CardDavDbSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CardDavDbSettings:
    """Load, validate, and cache the settings."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = CardDavDbSettings()
    return _settings_cache["default"]


__all__ = [
    "CardDavDbSettings",
    "get_settings",
]
