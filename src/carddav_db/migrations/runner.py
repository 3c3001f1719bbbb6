"""Schema migration runner.

Discovers migration directories, skips the ones recorded in the
``carddav_migrations`` log and applies the rest in order.  Each migration
is either a procedural step from the :class:`MigrationRegistry` or one
declarative SQL script per backend.

A failure never propagates to the caller: it is logged and the run stops,
leaving the schema as the last successful migration left it.  The outcome
is returned as a :class:`MigrationReport` for the host initialization path.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from carddav_db.errors import MigrationAbortError, QueryError
from carddav_db.logging import LogContext
from carddav_db.migrations.registry import MigrationRegistry, default_registry

if TYPE_CHECKING:
    from carddav_db.backends import BackendProfile
    from carddav_db.database import Database

# Migrations shipped with the package
DEFAULT_SCRIPT_DIR = Path(__file__).resolve().parent.parent / "dbmigrations"

MIGRATIONS_TABLE = "migrations"
PREFIX_TOKEN = "TABLE_PREFIX"

_MIGRATION_DIR = re.compile(r"^\d{4}-")
# Not an SQL parser: semicolons inside literals or comments are not supported.
_STATEMENT = re.compile(r".+?;", re.DOTALL)


def split_sql_statements(script: str) -> list[str]:
    """Split *script* into statements ending in ``;``.

    Text after the last semicolon is ignored, as are empty statements.
    """
    statements = []
    for match in _STATEMENT.finditer(script):
        statement = match.group(0).strip()
        if statement.rstrip(";").strip():
            statements.append(statement)
    return statements


class MigrationStatus(str, Enum):
    """Outcome of a migration run."""

    APPLIED = "applied"          # at least one migration applied
    UP_TO_DATE = "up_to_date"    # nothing pending
    ABORTED = "aborted"          # stopped at a failing migration


@dataclass
class MigrationReport:
    """Result of :meth:`MigrationRunner.check_migrations`."""

    status: MigrationStatus = MigrationStatus.UP_TO_DATE
    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: str | None = None
    reason: MigrationAbortError | None = None

    @property
    def ok(self) -> bool:
        return self.status is not MigrationStatus.ABORTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "applied": list(self.applied),
            "skipped": list(self.skipped),
            "failed": self.failed,
            "reason": self.reason.message if self.reason else None,
        }


class MigrationRunner:
    """Brings the plugin's schema up to date.

    Parameters
    ----------
    db
        The :class:`~carddav_db.database.Database` to migrate.
    registry
        Procedural steps by migration number.  Defaults to the steps
        shipped with the package.

    Example::

        runner = MigrationRunner(db)
        report = runner.check_migrations("rc_", "/path/to/dbmigrations")
        if not report.ok:
            print(f"stopped at {report.failed}: {report.reason}")
    """

    def __init__(self, db: Database, registry: MigrationRegistry | None = None) -> None:
        self._db = db
        self._registry = registry if registry is not None else default_registry()
        self._logger = db.logger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check_migrations(
        self,
        table_prefix: str | None = None,
        script_dir: Path | str | None = None,
    ) -> MigrationReport:
        """Apply all pending migrations in ascending order.

        Args:
            table_prefix: Substituted for ``TABLE_PREFIX`` in SQL scripts.
                Defaults to the database's table prefix.
            script_dir: Parent directory of the migration directories.
                Defaults to the migrations shipped with the package.
        """
        prefix = self._db.table_prefix if table_prefix is None else table_prefix
        root = Path(script_dir) if script_dir is not None else DEFAULT_SCRIPT_DIR
        report = MigrationReport()

        profile = self._db.profile
        if profile is None:
            self._logger.critical("migrations.unsupported_backend", backend=self._db.backend)
            return self._abort(report, None, f"Unsupported database backend: {self._db.backend}")

        available = self.discover(root)
        try:
            done = self.applied_migrations()
        except QueryError as exc:
            self._logger.error("migrations.log_unreadable", error=exc.message)
            return self._abort(report, None, f"Cannot read migration log: {exc.message}", exc)

        for migration in available:
            if migration in done:
                report.skipped.append(migration)
                continue

            with LogContext(migration=migration):
                self._logger.info("migration.started")
                reason = self._apply(migration, root / migration, prefix, profile)
            if reason is not None:
                return self._abort(report, migration, reason.message, reason.cause)

            report.applied.append(migration)
            self._logger.info("migration.applied", migration=migration)

        report.status = MigrationStatus.APPLIED if report.applied else MigrationStatus.UP_TO_DATE
        return report

    def discover(self, script_dir: Path | str) -> list[str]:
        """Names of the migration directories below *script_dir*, ascending."""
        root = Path(script_dir)
        if not root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in root.iterdir()
            if entry.is_dir() and _MIGRATION_DIR.match(entry.name)
        )

    def applied_migrations(self) -> set[str]:
        """Names recorded in the migration log.

        A missing log table means nothing has been applied yet.

        Raises:
            QueryError: The log exists but cannot be read.
        """
        try:
            rows = self._db.get(None, "filename", MIGRATIONS_TABLE)
        except QueryError:
            if not self._db.table_exists(MIGRATIONS_TABLE):
                self._logger.info("migrations.log_missing", table=self._db.table_name(MIGRATIONS_TABLE))
                return set()
            raise
        return {row["filename"] for row in rows}

    def pending(self, script_dir: Path | str | None = None) -> list[str]:
        """Migrations that a run would try to apply, in order."""
        root = Path(script_dir) if script_dir is not None else DEFAULT_SCRIPT_DIR
        done = self.applied_migrations()
        return [m for m in self.discover(root) if m not in done]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _abort(
        self,
        report: MigrationReport,
        migration: str | None,
        message: str,
        cause: Exception | None = None,
    ) -> MigrationReport:
        reason = MigrationAbortError(message, cause=cause)
        if migration is not None:
            reason.with_context(migration=migration)
        report.status = MigrationStatus.ABORTED
        report.failed = migration
        report.reason = reason
        self._logger.warning("migrations.aborted", migration=migration, reason=message)
        return report

    def _apply(
        self,
        migration: str,
        directory: Path,
        prefix: str,
        profile: BackendProfile,
    ) -> MigrationAbortError | None:
        """Apply one migration and record it.

        On backends with transactional DDL the schema change and the log
        insert run in one transaction, so a failed insert leaves no
        unrecorded schema change behind.
        """
        atomic = profile.transactional_ddl and not self._db.in_transaction
        if atomic:
            try:
                self._db.start_transaction(readonly=False)
            except QueryError as exc:
                return MigrationAbortError(f"Cannot start migration transaction: {exc.message}", cause=exc)

        reason = self._run_step(migration, directory, prefix, profile)
        if reason is None:
            reason = self._record(migration)

        if atomic:
            if reason is None:
                try:
                    self._db.end_transaction()
                except QueryError as exc:
                    reason = MigrationAbortError(f"Commit of migration failed: {exc.message}", cause=exc)
            else:
                self._rollback(migration)
        return reason

    def _run_step(
        self,
        migration: str,
        directory: Path,
        prefix: str,
        profile: BackendProfile,
    ) -> MigrationAbortError | None:
        step = self._registry.get(int(migration[:4]))
        if step is not None:
            try:
                success = step(self._db, self._logger.bind(migration=migration))
            except Exception as exc:
                self._logger.error("migration.step_raised", migration=migration, error=str(exc), exc_info=True)
                return MigrationAbortError(f"Procedural migration {migration} raised: {exc}", cause=exc)
            if not success:
                return MigrationAbortError(f"Procedural migration {migration} failed")
            return None

        script = directory / profile.migration_filename
        if script.is_file():
            return self._perform_sql_migration(script, prefix)

        self._logger.warning("migration.script_missing", migration=migration)
        return MigrationAbortError(f"No migration script found for: {migration}")

    def _perform_sql_migration(self, script: Path, prefix: str) -> MigrationAbortError | None:
        try:
            raw = script.read_text(encoding="utf-8")
        except OSError as exc:
            self._logger.error("migration.script_unreadable", script=str(script), error=str(exc))
            return MigrationAbortError(f"Failed to read migration script: {script}", cause=exc)

        statements = split_sql_statements(raw)
        self._logger.info("migration.statements_found", script=str(script), count=len(statements))

        for statement in statements:
            sql = statement.replace(PREFIX_TOKEN, prefix)
            try:
                self._db.execute(sql).close()
            except QueryError as exc:
                self._logger.error("migration.statement_failed", sql=sql, error=exc.message)
                return MigrationAbortError(f"Migration query failed: {exc.message}", cause=exc)
        return None

    def _record(self, migration: str) -> MigrationAbortError | None:
        sql = (
            f"INSERT INTO {self._db.quoted_table(MIGRATIONS_TABLE)} "
            f"({self._db.dialect.quote_identifier('filename')}) "
            f"VALUES ({self._db.dialect.placeholder()})"
        )
        try:
            self._db.execute(sql, (migration,)).close()
        except QueryError as exc:
            self._logger.error("migration.record_failed", migration=migration, error=exc.message)
            return MigrationAbortError(f"Recording migration {migration} failed: {exc.message}", cause=exc)
        return None

    def _rollback(self, migration: str) -> None:
        try:
            self._db.rollback_transaction()
        except QueryError as exc:
            self._logger.error("migration.rollback_failed", migration=migration, error=exc.message)


__all__ = [
    "DEFAULT_SCRIPT_DIR",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStatus",
    "split_sql_statements",
]
