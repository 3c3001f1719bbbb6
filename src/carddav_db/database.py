"""
Transaction-scoped database access for the carddav plugin.

:class:`Database` owns exactly one DB-API connection and is the only way
the rest of the plugin talks to the engine.  It layers two things over
that connection:

- a **transaction manager** that opens transactions with an explicit
  isolation level and access mode, using whatever statement the backend
  needs for that, and
- **CRUD operations** whose WHERE clauses come from the condition
  compiler, so callers never write SQL.

Manifesto:
    The sync logic and the settings UI should be testable against a mock
    of this class.  That only works if every query they need goes through
    a small, structured interface instead of ad-hoc SQL strings.

    - **One connection:** All statements of a transaction go through the
      same instance; never share an instance between concurrent work
    - **Explicit boundaries:** The connection runs in autocommit mode and
      BEGIN/COMMIT/ROLLBACK are issued by this class
    - **Bound values:** Values are parameters, identifiers are quoted
    - **Forgiving rollback:** Rolling back while idle only logs a notice

Architecture:
    ::

        Idle ──start(readonly)──► Active(ReadOnly)  ──commit/rollback──► Idle
        Idle ──start(rw)────────► Active(ReadWrite) ──commit/rollback──► Idle
        Idle ──rollback─────────► Idle   (notice only)
        Active ──start──────────► NestedTransactionError

Examples:
    >>> import sqlite3
    >>> db = Database(sqlite3.connect(":memory:", isolation_level=None), "sqlite")
    >>> db.start_transaction(readonly=False)
    >>> db.transaction_state
    <TransactionState.READ_WRITE: 'read_write'>
    >>> db.end_transaction()

Guardrails:
    ❌ DON'T: Pass a sqlite3 connection with implicit transaction handling
    ✅ DO: Open it with ``isolation_level=None`` (see ``open_connection``)

    ❌ DON'T: Track whether a transaction is open before rolling back
    ✅ DO: Call rollback_transaction() unconditionally in error paths

Tags:
    database, transactions, isolation, crud, carddav-db
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from enum import Enum
from typing import Any

from carddav_db.backends import (
    SESSION_RESET_STATEMENT,
    BackendProfile,
    get_backend_profile,
)
from carddav_db.conditions import Conditions, WhereClause, compile_conditions
from carddav_db.dialect import Dialect, SQLiteDialect
from carddav_db.errors import (
    NestedTransactionError,
    NoActiveTransactionError,
    QueryError,
    UnexpectedRowCountError,
)
from carddav_db.logging import get_logger

# Tables that have no single-column id (pure association tables).
TABLES_WITHOUT_ID = frozenset({"group_user"})

TABLE_NAMESPACE = "carddav_"


class TransactionState(str, Enum):
    """Transaction state of a :class:`Database` instance."""

    IDLE = "idle"
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


class Database:
    """Access module for the plugin's tables.

    Parameters:
        connection: A DB-API 2.0 connection in autocommit mode.
        backend: Backend identifier (``sqlite``, ``mysql``, ``postgres``).
            Unsupported identifiers are logged; transactions and
            migrations are then skipped, and CRUD falls back to ANSI
            quoting with ``?`` placeholders.
        table_prefix: Prefix of all table names, as configured in the host.
        logger: structlog logger; defaults to this module's logger.
    """

    def __init__(
        self,
        connection: Any,
        backend: str,
        *,
        table_prefix: str = "",
        logger: Any = None,
    ) -> None:
        self._conn = connection
        self._backend = str(backend)
        self._profile: BackendProfile | None = get_backend_profile(self._backend)
        self._dialect: Dialect = self._profile.dialect if self._profile else SQLiteDialect()
        self.table_prefix = table_prefix
        self._logger = logger or get_logger(__name__)
        self._state = TransactionState.IDLE

        if self._profile is None:
            self._logger.critical("database.unsupported_backend", backend=self._backend)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def connection(self) -> Any:
        """The underlying DB-API connection (for legacy code paths only)."""
        return self._conn

    @property
    def backend(self) -> str:
        return self._backend

    @property
    def profile(self) -> BackendProfile | None:
        """Capability profile; ``None`` for an unsupported backend."""
        return self._profile

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def logger(self) -> Any:
        return self._logger

    @property
    def transaction_state(self) -> TransactionState:
        return self._state

    @property
    def in_transaction(self) -> bool:
        return self._state is not TransactionState.IDLE

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def start_transaction(self, readonly: bool = True) -> None:
        """Start a transaction on the internal connection.

        All queries of the transaction must be issued through this same
        instance so that they use the same connection.

        Args:
            readonly: True if the transaction only queries data.  Read-only
                transactions run at REPEATABLE READ, read-write ones at
                SERIALIZABLE.

        Raises:
            NestedTransactionError: A transaction is already open.
            QueryError: Setting the isolation level or BEGIN failed.
        """
        if self._state is not TransactionState.IDLE:
            raise NestedTransactionError("Cannot start nested transaction").with_context(
                backend=self._backend
            )

        profile = self._profile
        if profile is None:
            self._logger.critical("transaction.unsupported_backend", backend=self._backend)
            return

        level = "REPEATABLE READ" if readonly else "SERIALIZABLE"
        mode = "READ ONLY" if readonly else "READ WRITE"

        try:
            isolation_sql = profile.isolation_sql(level, mode)
            if isolation_sql is not None:
                self._execute(isolation_sql)
            self._execute(profile.begin_statement)
        except QueryError as exc:
            self._logger.error("transaction.start_failed", error=exc.message, backend=self._backend)
            # The isolation statement may have changed session defaults.
            self._reset_transaction_settings()
            raise

        self._state = TransactionState.READ_ONLY if readonly else TransactionState.READ_WRITE
        self._logger.debug("transaction.started", level=level, mode=mode)

    def end_transaction(self) -> None:
        """Commit the open transaction.

        Raises:
            NoActiveTransactionError: No transaction is open.
            QueryError: COMMIT failed.
        """
        if self._state is TransactionState.IDLE:
            raise NoActiveTransactionError(
                "Attempt to commit a transaction while not within a transaction"
            ).with_context(backend=self._backend)

        self._state = TransactionState.IDLE
        try:
            self._execute("COMMIT")
        except QueryError as exc:
            self._logger.error("transaction.commit_failed", error=exc.message)
            self._discard_failed_commit()
            raise

        self._reset_transaction_settings()
        self._logger.debug("transaction.committed")

    def rollback_transaction(self) -> None:
        """Roll back the open transaction.

        Without an open transaction this only logs a notice, so error
        paths can call it without knowing whether a transaction was open.

        Raises:
            QueryError: ROLLBACK failed.
        """
        if self._state is TransactionState.IDLE:
            self._logger.info("transaction.rollback_ignored", reason="not within a transaction")
            return

        self._state = TransactionState.IDLE
        try:
            self._execute("ROLLBACK")
        except QueryError as exc:
            self._logger.error("transaction.rollback_failed", error=exc.message)
            raise

        self._reset_transaction_settings()
        self._logger.debug("transaction.rolled_back")

    @contextmanager
    def transaction(self, readonly: bool = False) -> Iterator[Database]:
        """Context manager committing on success and rolling back on error.

        Example:
            with db.transaction():
                db.insert("groups", ["abook_id", "name"], [abook_id, "Friends"])
        """
        self.start_transaction(readonly=readonly)
        try:
            yield self
        except BaseException:
            self.rollback_transaction()
            raise
        if self.in_transaction:
            self.end_transaction()

    def _reset_transaction_settings(self) -> None:
        """Restore READ WRITE defaults for autocommit statements."""
        if self._profile is None or not self._profile.resets_session_on_end:
            return
        try:
            self._execute(SESSION_RESET_STATEMENT)
        except QueryError as exc:
            self._logger.warning("transaction.session_reset_failed", error=exc.message)

    def _discard_failed_commit(self) -> None:
        """Roll back after a rejected COMMIT; some engines keep the transaction open."""
        try:
            self._execute("ROLLBACK")
        except QueryError as exc:
            self._logger.warning("transaction.rollback_after_commit_failed", error=exc.message)
        self._reset_transaction_settings()

    # ------------------------------------------------------------------
    # Raw statements
    # ------------------------------------------------------------------

    def table_name(self, table: str) -> str:
        """Unquoted physical name of logical table *table*."""
        return f"{self.table_prefix}{TABLE_NAMESPACE}{table}"

    def quoted_table(self, table: str) -> str:
        return self._dialect.quote_identifier(self.table_name(table))

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Execute a raw statement and return the cursor.

        Used by the migration runner and procedural migrations; plugin
        code uses the CRUD operations instead.

        Raises:
            QueryError: The engine rejected the statement.
        """
        return self._execute(sql, params)

    def table_exists(self, table: str) -> bool:
        """Whether the physical table for logical *table* exists."""
        cursor = self._execute(self._dialect.table_exists_query(), (self.table_name(table),))
        try:
            return cursor.fetchone() is not None
        except Exception as exc:
            raise QueryError(str(exc), cause=exc).with_context(table=table) from exc
        finally:
            cursor.close()

    def _execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        *,
        table: str | None = None,
    ) -> Any:
        cursor = self._conn.cursor()
        try:
            if params:
                cursor.execute(sql, tuple(params))
            else:
                cursor.execute(sql)
        except Exception as exc:
            cursor.close()
            raise QueryError(str(exc), cause=exc).with_context(
                backend=self._backend, table=table, sql=sql
            ) from exc
        return cursor

    def _fetch_rows(self, cursor: Any, sql: str, table: str) -> list[dict[str, Any]]:
        try:
            rows = cursor.fetchall()
            columns = [desc[0] for desc in cursor.description or ()]
        except Exception as exc:
            raise QueryError(str(exc), cause=exc).with_context(table=table, sql=sql) from exc
        finally:
            cursor.close()
        return [dict(zip(columns, row)) for row in rows]

    def _where(self, conditions: Conditions) -> WhereClause:
        return compile_conditions(conditions, self._dialect)

    def _log_statement(self, event: str, table: str, sql: str, where: WhereClause, **kw: Any) -> None:
        self._logger.debug(event, table=table, sql=sql, where=where.render(self._dialect), **kw)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, table: str, columns: Sequence[str], values: Sequence[Any]) -> str:
        """Store a new row.

        Args:
            table: Logical table name (e.g. ``contacts``).
            columns: Column names to insert.
            values: Values for ``columns``, in the same order.

        Returns:
            The generated id of the new row as a string; an empty string
            for tables without a single id column.

        Raises:
            ValueError: ``columns`` is empty or does not match ``values``.
            QueryError: The engine rejected the statement.
        """
        if not columns or len(columns) != len(values):
            raise ValueError(
                f"insert into {table}: {len(columns)} columns for {len(values)} values"
            )

        has_id = table not in TABLES_WITHOUT_ID
        returning = has_id and self._profile is not None and self._profile.insert_returning_id

        cols = ", ".join(self._dialect.quote_identifier(c) for c in columns)
        sql = (
            f"INSERT INTO {self.quoted_table(table)} ({cols}) "
            f"VALUES ({self._dialect.placeholders(len(values))})"
        )
        if returning:
            sql += f" RETURNING {self._dialect.quote_identifier('id')}"

        cursor = self._execute(sql, values, table=table)
        try:
            if not has_id:
                dbid = ""
            elif returning:
                row = cursor.fetchone()
                dbid = str(row[0]) if row else ""
            else:
                dbid = "" if cursor.lastrowid is None else str(cursor.lastrowid)
        finally:
            cursor.close()

        if has_id and not dbid:
            raise QueryError(f"INSERT into {table} returned no generated id").with_context(
                backend=self._backend, table=table, sql=sql
            )

        self._logger.debug("database.insert", table=table, sql=sql, id=dbid)
        return dbid

    def update(
        self,
        conditions: Conditions,
        columns: Sequence[str],
        values: Sequence[Any],
        table: str = "contacts",
    ) -> int:
        """Update rows matching *conditions*.

        Returns:
            The number of rows the engine reports as modified.
        """
        if not columns or len(columns) != len(values):
            raise ValueError(
                f"update of {table}: {len(columns)} columns for {len(values)} values"
            )

        ph = self._dialect.placeholder()
        assignments = ", ".join(f"{self._dialect.quote_identifier(c)} = {ph}" for c in columns)
        where = self._where(conditions)
        sql = f"UPDATE {self.quoted_table(table)} SET {assignments}{where.sql}"

        self._log_statement("database.update", table, sql, where)
        cursor = self._execute(sql, (*values, *where.params), table=table)
        count = cursor.rowcount
        cursor.close()
        return count

    def get(
        self,
        conditions: Conditions,
        columns: str = "*",
        table: str = "contacts",
    ) -> list[dict[str, Any]]:
        """Get rows from a table.

        Args:
            conditions: Filter, see :mod:`carddav_db.conditions`.
            columns: Comma-separated column list for the SELECT clause.
            table: Logical table name.

        Returns:
            One dict per matching row, keyed by column name.
        """
        where = self._where(conditions)
        sql = f"SELECT {self._select_list(columns)} FROM {self.quoted_table(table)}{where.sql}"

        self._log_statement("database.get", table, sql, where)
        cursor = self._execute(sql, where.params, table=table)
        return self._fetch_rows(cursor, sql, table)

    def lookup(
        self,
        conditions: Conditions,
        columns: str = "*",
        table: str = "contacts",
    ) -> dict[str, Any]:
        """Like :meth:`get`, but exactly one row must match.

        Raises:
            UnexpectedRowCountError: Zero or more than one row matched.
        """
        rows = self.get(conditions, columns, table)
        if len(rows) != 1:
            where = self._where(conditions)
            raise UnexpectedRowCountError(
                f"Single-row query on {table}{where.render(self._dialect)} returned {len(rows)} rows",
                row_count=len(rows),
            ).with_context(backend=self._backend, table=table)
        return rows[0]

    def delete(self, conditions: Conditions, table: str = "contacts") -> int:
        """Delete rows matching *conditions*; returns the number deleted."""
        where = self._where(conditions)
        sql = f"DELETE FROM {self.quoted_table(table)}{where.sql}"

        self._log_statement("database.delete", table, sql, where)
        cursor = self._execute(sql, where.params, table=table)
        count = cursor.rowcount
        cursor.close()
        return count

    def _select_list(self, columns: str) -> str:
        if columns.strip() == "*":
            return "*"
        names = [c.strip() for c in columns.split(",") if c.strip()]
        if not names:
            raise ValueError("empty column list")
        return ", ".join(self._dialect.quote_identifier(c) for c in names)

    def close(self) -> None:
        """Roll back any open transaction and close the connection."""
        self.rollback_transaction()
        self._conn.close()


__all__ = [
    "Database",
    "TransactionState",
    "TABLES_WITHOUT_ID",
]
