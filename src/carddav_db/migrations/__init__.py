"""Schema migrations for carddav-db.

Manifesto:
    The plugin's schema must evolve with the plugin, on whichever backend
    the host runs, without an operator running DDL by hand.  Migrations
    are numbered directories applied once each and recorded in the
    ``carddav_migrations`` table.

Modules
-------
runner    MigrationRunner with check_migrations() / pending()
registry  MigrationRegistry mapping numbers to procedural steps
steps     Procedural steps shipped with the package

Tags:
    carddav-db, migrations, schema, database, idempotent, DDL
"""

from carddav_db.migrations.registry import MigrationRegistry, MigrationStep, default_registry
from carddav_db.migrations.runner import (
    DEFAULT_SCRIPT_DIR,
    MigrationReport,
    MigrationRunner,
    MigrationStatus,
    split_sql_statements,
)

__all__ = [
    "DEFAULT_SCRIPT_DIR",
    "MigrationRegistry",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStatus",
    "MigrationStep",
    "default_registry",
    "split_sql_statements",
]
