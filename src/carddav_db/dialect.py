"""SQL dialect abstraction for the three supported backends.

Provides a ``Dialect`` protocol and one implementation per backend.  The
condition compiler and the CRUD layer use ``Dialect`` methods to produce
placeholders, identifier quoting and the case-insensitive pattern operator
without branching on the backend themselves.

Manifesto:
    Query building must be portable across SQLite, MySQL and PostgreSQL.
    Without a dialect layer every call site grows its own three-way switch
    on the backend name, and the switches drift apart.

    - **One interface:** Dialect protocol for all SQL fragments
    - **Bound values:** Placeholders match each driver's paramstyle
    - **Quoted identifiers:** Column and table names never reach SQL raw

Architecture::

    ┌─────────────────────────────────────────────────────────────┐
    │  where = f"{d.quote_identifier('email')} {d.pattern_match…}" │
    │  sql = f"INSERT … VALUES ({d.placeholders(3)})"             │
    └─────────────────────────────────────────────────────────────┘
                              │
                              ▼
       ┌──────────────┐  ┌─────────────────┐  ┌─────────────────┐
       │ SQLite       │  │ MySQL           │  │ PostgreSQL      │
       │ ?  "col"     │  │ %s  `col`       │  │ %s  "col"       │
       │ LIKE         │  │ COLLATE … LIKE  │  │ ILIKE           │
       └──────────────┘  └─────────────────┘  └─────────────────┘

Examples:
    >>> from carddav_db.dialect import get_dialect
    >>> d = get_dialect("postgres")
    >>> d.placeholders(2)
    '%s, %s'
    >>> d.pattern_match('"email"', negate=True)
    '"email" NOT ILIKE'

Guardrails:
    ❌ DON'T: Interpolate caller values into SQL text
    ✅ DO: Bind them through placeholder()/placeholders()

    ❌ DON'T: Use quote() to build executed statements
    ✅ DO: Use it only to render statements for log output

Tags:
    dialect, sql, abstraction, portability, database, carddav-db
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment** (string) that is valid for
    the target database.
    """

    @property
    def name(self) -> str:
        """Dialect name (``'sqlite'``, ``'mysql'``, ``'postgres'``)."""
        ...

    # -- Placeholder generation --------------------------------------------

    def placeholder(self) -> str:
        """Single positional placeholder in the driver's paramstyle."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list.

        >>> dialect.placeholders(3)
        '?, ?, ?'          # SQLite
        '%s, %s, %s'       # PostgreSQL / MySQL
        """
        ...

    # -- Quoting -----------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        """Quote a column or table name."""
        ...

    def quote(self, value: Any) -> str:
        """Render *value* as an SQL literal (log output only)."""
        ...

    # -- Matching ----------------------------------------------------------

    def pattern_match(self, column_sql: str, negate: bool = False) -> str:
        """Case-insensitive pattern operator applied to *column_sql*.

        The returned fragment ends with the operator; the caller appends
        the bound value placeholder.
        """
        ...

    # -- Introspection -----------------------------------------------------

    def table_exists_query(self) -> str:
        """Query returning a row iff the table named by its one placeholder exists."""
        ...


def _quote_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class _BaseDialect:
    """Shared literal rendering for the concrete dialects."""

    _true_literal = "1"
    _false_literal = "0"

    def quote(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self._true_literal if value else self._false_literal
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        return self._quote_text(str(value))

    def _quote_text(self, value: str) -> str:
        return _quote_string(value)


class SQLiteDialect(_BaseDialect):
    """SQLite dialect: ``?`` placeholders, ``"ident"``, ``LIKE``.

    SQLite's ``LIKE`` is case-insensitive for ASCII characters, which is
    the closest built-in match to ``ILIKE``.
    """

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self) -> str:
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def pattern_match(self, column_sql: str, negate: bool = False) -> str:
        return f"{column_sql} NOT LIKE" if negate else f"{column_sql} LIKE"

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"


class MySQLDialect(_BaseDialect):
    """MySQL dialect: ``%s`` placeholders, backtick identifiers.

    Compatible with ``mysql.connector`` (format paramstyle).  Pattern
    matches force a case-insensitive collation so the result does not
    depend on the column's own collation.
    """

    COLLATION = "utf8mb4_unicode_ci"

    @property
    def name(self) -> str:
        return "mysql"

    def placeholder(self) -> str:
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def quote_identifier(self, name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def _quote_text(self, value: str) -> str:
        return _quote_string(value.replace("\\", "\\\\"))

    def pattern_match(self, column_sql: str, negate: bool = False) -> str:
        operator = "NOT LIKE" if negate else "LIKE"
        return f"{column_sql} COLLATE {self.COLLATION} {operator}"

    def table_exists_query(self) -> str:
        return (
            "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s"
        )


class PostgreSQLDialect(_BaseDialect):
    """PostgreSQL dialect: ``%s`` placeholders (psycopg2), native ``ILIKE``."""

    _true_literal = "TRUE"
    _false_literal = "FALSE"

    @property
    def name(self) -> str:
        return "postgres"

    def placeholder(self) -> str:
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def pattern_match(self, column_sql: str, negate: bool = False) -> str:
        return f"{column_sql} NOT ILIKE" if negate else f"{column_sql} ILIKE"

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = %s"
        )


# =========================================================================
# Registry / Factory
# =========================================================================

# Dialects are stateless
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "mysql": MySQLDialect(),
    "postgres": PostgreSQLDialect(),
}


def get_dialect(name: str) -> Dialect:
    """Get a dialect by backend name.

    Raises:
        ValueError: If ``name`` is not recognised.

    Example:
        >>> get_dialect("sqlite").quote_identifier("id")
        '"id"'
    """
    key = name.lower()
    if key not in _DIALECTS:
        raise ValueError(f"Unknown dialect '{name}'. Supported: {sorted(_DIALECTS)}")
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "get_dialect",
]
