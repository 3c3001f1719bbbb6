"""Opening connections and bringing the schema up to date.

Every connection is opened in **autocommit** mode: the
:class:`~carddav_db.database.Database` issues transaction boundaries
itself, and the isolation statements of MySQL and PostgreSQL must not run
inside a transaction the driver opened implicitly.

Drivers are imported on use, so only the one for the configured backend
has to be installed::

    pip install carddav-db[postgres]   # psycopg2-binary
    pip install carddav-db[mysql]      # mysql-connector-python
"""

from __future__ import annotations

from typing import Any

from carddav_db.backends import BackendType, get_backend_profile
from carddav_db.database import Database
from carddav_db.errors import ConfigError, DatabaseConnectionError, UnsupportedBackendError
from carddav_db.logging import get_logger
from carddav_db.migrations.registry import MigrationRegistry
from carddav_db.migrations.runner import MigrationReport, MigrationRunner
from carddav_db.settings import CardDavDbSettings, get_settings

logger = get_logger(__name__)


def _connect_sqlite(settings: CardDavDbSettings) -> Any:
    import sqlite3

    path = settings.sqlite_path
    try:
        conn = sqlite3.connect(
            path,
            timeout=settings.connect_timeout,
            isolation_level=None,
            uri=path.startswith("file:"),
        )
        conn.execute("PRAGMA foreign_keys = ON")
    except sqlite3.Error as e:
        raise DatabaseConnectionError(f"Failed to connect to SQLite: {e}", cause=e) from e
    return conn


def _connect_postgres(settings: CardDavDbSettings) -> Any:
    try:
        import psycopg2
    except ImportError:
        raise ConfigError(
            "psycopg2 is required for PostgreSQL. Install with: pip install psycopg2-binary"
        ) from None

    try:
        conn = psycopg2.connect(
            host=settings.host,
            port=settings.effective_port,
            dbname=settings.database,
            user=settings.username,
            password=settings.password,
            connect_timeout=settings.connect_timeout,
        )
        conn.autocommit = True
    except psycopg2.Error as e:
        raise DatabaseConnectionError(f"Failed to connect to PostgreSQL: {e}", cause=e) from e
    return conn


def _connect_mysql(settings: CardDavDbSettings) -> Any:
    try:
        import mysql.connector
    except ImportError:
        raise ConfigError(
            "mysql-connector-python is required for MySQL. "
            "Install with: pip install mysql-connector-python"
        ) from None

    try:
        conn = mysql.connector.connect(
            host=settings.host,
            port=settings.effective_port,
            database=settings.database,
            user=settings.username,
            password=settings.password,
            charset="utf8mb4",
            connection_timeout=settings.connect_timeout,
            autocommit=True,
            buffered=True,
        )
    except mysql.connector.Error as e:
        raise DatabaseConnectionError(f"Failed to connect to MySQL: {e}", cause=e) from e
    return conn


_CONNECTORS = {
    BackendType.SQLITE: _connect_sqlite,
    BackendType.POSTGRES: _connect_postgres,
    BackendType.MYSQL: _connect_mysql,
}


def open_connection(settings: CardDavDbSettings | None = None) -> Any:
    """Open an autocommit DB-API connection for the configured backend.

    Raises:
        UnsupportedBackendError: The backend is not supported.
        ConfigError: The driver for the backend is not installed.
        DatabaseConnectionError: The driver could not connect.
    """
    settings = settings or get_settings()
    profile = get_backend_profile(settings.backend)
    if profile is None:
        raise UnsupportedBackendError(settings.backend)
    return _CONNECTORS[profile.backend](settings)


def open_database(settings: CardDavDbSettings | None = None) -> Database:
    """Open a connection and wrap it in a :class:`Database`."""
    settings = settings or get_settings()
    return Database(
        open_connection(settings),
        settings.backend,
        table_prefix=settings.table_prefix,
    )


def bootstrap(
    settings: CardDavDbSettings | None = None,
    registry: MigrationRegistry | None = None,
) -> tuple[Database, MigrationReport]:
    """Host initialization: open the database and migrate the schema.

    A failed migration does not raise; the report says what happened so
    the host can keep running with the plugin degraded.
    """
    settings = settings or get_settings()
    db = open_database(settings)
    report = MigrationRunner(db, registry).check_migrations(
        settings.table_prefix, settings.migrations_dir
    )

    if report.ok:
        logger.info(
            "bootstrap.schema_ready",
            status=report.status.value,
            applied=report.applied,
        )
    else:
        logger.warning(
            "bootstrap.schema_degraded",
            failed=report.failed,
            reason=report.reason.message if report.reason else None,
            applied=report.applied,
        )
    return db, report


__all__ = [
    "open_connection",
    "open_database",
    "bootstrap",
]
