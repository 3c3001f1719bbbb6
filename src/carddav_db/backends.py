"""Backend capability table.

Transaction setup, session reset, SQL dialect and migration script
selection all depend on the backend.  Each supported backend is described
once here by a :class:`BackendProfile`; the rest of the package looks up
the profile instead of switching on the backend name.

Tags:
    database, backends, isolation, migrations, carddav-db
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from carddav_db.dialect import Dialect, get_dialect


class BackendType(str, Enum):
    """Supported backend identifiers."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    POSTGRES = "postgres"


# Applied after every commit/rollback on backends whose isolation settings
# are session-scoped, so autocommit statements run read/write again.
SESSION_RESET_STATEMENT = (
    "SET SESSION CHARACTERISTICS AS TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ WRITE"
)


@dataclass(frozen=True)
class BackendProfile:
    """Everything the persistence layer needs to know about one backend.

    Attributes:
        backend: Backend identifier
        isolation_statement: Template with ``{level}`` and ``{mode}``, or
            ``None`` when the engine has no isolation command
        begin_statement: Statement opening an explicit transaction
        resets_session_on_end: Whether isolation settings persist in the
            session and must be reset after commit/rollback
        migration_file_suffix: Declarative migration scripts are named
            ``<suffix>.sql``
        transactional_ddl: Whether schema changes can be rolled back
        insert_returning_id: Whether generated ids are fetched with
            ``RETURNING id`` instead of ``cursor.lastrowid``
    """

    backend: BackendType
    isolation_statement: str | None
    begin_statement: str
    resets_session_on_end: bool
    migration_file_suffix: str
    transactional_ddl: bool
    insert_returning_id: bool = False

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.backend.value)

    @property
    def migration_filename(self) -> str:
        return f"{self.migration_file_suffix}.sql"

    def isolation_sql(self, level: str, mode: str) -> str | None:
        """Isolation statement for the given level and access mode."""
        if self.isolation_statement is None:
            return None
        return self.isolation_statement.format(level=level, mode=mode)


_PROFILES: dict[str, BackendProfile] = {
    # SQLite transactions are always serializable; it has no SET TRANSACTION.
    BackendType.SQLITE.value: BackendProfile(
        backend=BackendType.SQLITE,
        isolation_statement=None,
        begin_statement="BEGIN",
        resets_session_on_end=False,
        migration_file_suffix="sqlite3",
        transactional_ddl=True,
    ),
    # Applies to the next transaction only.
    BackendType.MYSQL.value: BackendProfile(
        backend=BackendType.MYSQL,
        isolation_statement="SET TRANSACTION ISOLATION LEVEL {level}, {mode}",
        begin_statement="START TRANSACTION",
        resets_session_on_end=False,
        migration_file_suffix="mysql",
        transactional_ddl=False,
    ),
    BackendType.POSTGRES.value: BackendProfile(
        backend=BackendType.POSTGRES,
        isolation_statement=(
            "SET SESSION CHARACTERISTICS AS TRANSACTION ISOLATION LEVEL {level}, {mode}"
        ),
        begin_statement="BEGIN",
        resets_session_on_end=True,
        migration_file_suffix="postgres",
        transactional_ddl=True,
        insert_returning_id=True,
    ),
}


def get_backend_profile(backend: str | BackendType) -> BackendProfile | None:
    """Look up the profile for *backend*; ``None`` if it is unsupported.

    Identifiers are matched exactly; settings normalise user input.
    """
    key = backend.value if isinstance(backend, BackendType) else str(backend)
    return _PROFILES.get(key)


def supported_backends() -> list[str]:
    """List supported backend identifiers."""
    return sorted(_PROFILES)


__all__ = [
    "BackendType",
    "BackendProfile",
    "SESSION_RESET_STATEMENT",
    "get_backend_profile",
    "supported_backends",
]
