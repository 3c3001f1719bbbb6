"""
Shared pytest fixtures for carddav-db tests.

This module provides:
- In-memory SQLite connections in autocommit mode
- A Database with the shipped schema applied
- MagicMock connections standing in for MySQL/PostgreSQL drivers
- structlog reset between tests so ``capture_logs`` keeps working
"""

import sqlite3
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import structlog

# Ensure carddav_db and tests._support are importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from carddav_db.database import Database
from carddav_db.migrations.runner import MigrationRunner


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo configure_logging() calls made by a test."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def sqlite_conn():
    """In-memory SQLite connection in autocommit mode."""
    conn = sqlite3.connect(":memory:", isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON")
    yield conn
    conn.close()


@pytest.fixture()
def db(sqlite_conn: sqlite3.Connection) -> Database:
    """Database over an empty in-memory SQLite schema."""
    return Database(sqlite_conn, "sqlite")


@pytest.fixture()
def schema_db(db: Database) -> Database:
    """Database with the shipped migrations applied."""
    report = MigrationRunner(db).check_migrations()
    assert report.ok, report.reason
    return db


@pytest.fixture()
def abook_id(schema_db: Database) -> str:
    """An account with one address book; returns the address book id."""
    account_id = schema_db.insert(
        "accounts",
        ["user_id", "accountname", "username", "password"],
        [1, "Home", "alice", "secret"],
    )
    return schema_db.insert(
        "addressbooks",
        ["account_id", "name", "url"],
        [account_id, "Contacts", "https://dav.example.com/alice/contacts/"],
    )


@pytest.fixture()
def mock_conn() -> MagicMock:
    """DB-API connection mock; every cursor() call returns the same cursor."""
    conn = MagicMock()
    cursor = MagicMock()
    cursor.fetchall.return_value = []
    cursor.fetchone.return_value = None
    cursor.description = None
    conn.cursor.return_value = cursor
    return conn


