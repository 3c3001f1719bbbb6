"""
carddav-db: persistence layer of the carddav contacts-sync plugin.

Transaction-scoped access to the plugin's tables on SQLite, MySQL and
PostgreSQL, a condition-based query builder used by all CRUD operations,
and a self-hosted schema migration runner.

Examples:
    >>> from carddav_db import CardDavDbSettings, bootstrap
    >>> db, report = bootstrap(CardDavDbSettings(backend="sqlite"))
    >>> report.ok
    True
    >>> with db.transaction():
    ...     db.get({"%email": "%@example.com"}, "id,name")
    []
"""

from carddav_db.address_objects import AddressObjectStore
from carddav_db.backends import BackendProfile, BackendType, get_backend_profile
from carddav_db.conditions import WhereClause, compile_conditions
from carddav_db.connection import bootstrap, open_connection, open_database
from carddav_db.database import Database, TransactionState
from carddav_db.errors import (
    CardDavError,
    ConditionUsageError,
    NestedTransactionError,
    NoActiveTransactionError,
    QueryError,
    UnexpectedRowCountError,
    UnsupportedBackendError,
)
from carddav_db.migrations import MigrationRegistry, MigrationReport, MigrationRunner, MigrationStatus
from carddav_db.settings import CardDavDbSettings, get_settings

__version__ = "0.1.0"

__all__ = [
    "AddressObjectStore",
    "BackendProfile",
    "BackendType",
    "CardDavDbSettings",
    "CardDavError",
    "ConditionUsageError",
    "Database",
    "MigrationRegistry",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStatus",
    "NestedTransactionError",
    "NoActiveTransactionError",
    "QueryError",
    "TransactionState",
    "UnexpectedRowCountError",
    "UnsupportedBackendError",
    "WhereClause",
    "bootstrap",
    "compile_conditions",
    "get_backend_profile",
    "get_settings",
    "open_connection",
    "open_database",
]
