"""
Structured error types for the carddav-db persistence layer.

Every failure the persistence layer reports is a :class:`CardDavError`
subclass carrying a category, a retry hint, structured context and the
chained driver exception.

Manifesto:
    - **Typed hierarchy:** Contract violations, engine failures and bad
      filter input are different errors, not one generic ``Exception``
    - **Engine text preserved:** QueryError wraps the driver message and
      chains the driver exception as ``cause``
    - **Rich context:** backend, table, SQL and migration name travel with
      the error for logging

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         CardDavError                          │
        │        (category, retryable, context, cause)                  │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigError             DatabaseError          ValidationError│
        │      │                       │                       │        │
        │  UnsupportedBackend      QueryError          ConditionUsage   │
        │                              │                                 │
        │  DatabaseConnectionError  UnexpectedRowCount                   │
        │  (retryable)             TransactionError                      │
        │                              ├─ NestedTransactionError         │
        │                              └─ NoActiveTransactionError       │
        │                          MigrationAbortError (never raised)    │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise bare Exception for engine failures
    ✅ DO: Raise QueryError(message, cause=driver_exc)

    ❌ DON'T: Raise MigrationAbortError to callers
    ✅ DO: Attach it to the MigrationReport as the abort reason

Tags:
    error-handling, exception-hierarchy, database, carddav-db
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"         # Engine, connection, transaction
    MIGRATION = "MIGRATION"       # Schema migration failures
    VALIDATION = "VALIDATION"     # Malformed caller input
    CONFIG = "CONFIG"             # Missing driver, unsupported backend
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        backend: Backend identifier (``sqlite``, ``mysql``, ``postgres``)
        table: Logical table name the operation targeted
        sql: Statement text that failed (placeholders, never values)
        migration: Migration directory name
        metadata: Additional key-value pairs
    """

    backend: str | None = None
    table: str | None = None
    sql: str | None = None
    migration: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["backend", "table", "sql", "migration"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CardDavError(Exception):
    """
    Base exception for all carddav-db errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass what differs.

    Examples:
        >>> err = QueryError("no such table: carddav_contacts")
        >>> err.category
        <ErrorCategory.DATABASE: 'DATABASE'>
        >>> err.with_context(table="contacts").context.table
        'contacts'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CardDavError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError(str(exc), cause=exc).with_context(
                table="contacts", sql=sql
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(CardDavError):
    """Missing driver or invalid settings."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnsupportedBackendError(ConfigError):
    """Backend identifier is not one of the supported engines.

    Transaction and migration operations only log this condition and skip
    the operation; it is raised solely when a connection has to be opened
    for an unknown backend.
    """

    def __init__(self, backend: str, **kwargs: Any):
        super().__init__(f"Unsupported database backend: {backend}", **kwargs)
        self.context.backend = backend


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseConnectionError(CardDavError):
    """Failed to open a connection to the database engine."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class DatabaseError(CardDavError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryError(DatabaseError):
    """A statement failed in the engine; message is the engine's error text."""

    pass


class UnexpectedRowCountError(QueryError):
    """A single-row lookup matched zero or several rows."""

    def __init__(self, message: str, *, row_count: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.row_count = row_count


class TransactionError(DatabaseError):
    """Transaction API used outside its contract."""

    pass


class NestedTransactionError(TransactionError):
    """A transaction was started while another one is still open."""

    pass


class NoActiveTransactionError(TransactionError):
    """Commit requested while no transaction is open."""

    pass


class MigrationAbortError(DatabaseError):
    """Reason a migration run stopped early.

    Never raised: the runner attaches it to its report so that a broken
    migration degrades the plugin instead of the host application.
    """

    default_category = ErrorCategory.MIGRATION


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(CardDavError):
    """Malformed input from the caller."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class ConditionUsageError(ValidationError):
    """Filter conditions cannot be compiled (empty list, pattern on a list)."""

    pass


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CardDavError",
    "ConfigError",
    "UnsupportedBackendError",
    "DatabaseConnectionError",
    "DatabaseError",
    "QueryError",
    "UnexpectedRowCountError",
    "TransactionError",
    "NestedTransactionError",
    "NoActiveTransactionError",
    "MigrationAbortError",
    "ValidationError",
    "ConditionUsageError",
]
