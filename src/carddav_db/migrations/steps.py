"""Procedural migration steps shipped with carddav-db."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from carddav_db.errors import QueryError

if TYPE_CHECKING:
    from carddav_db.database import Database
    from carddav_db.migrations.registry import MigrationRegistry


def normalize_email(value: str) -> str:
    """Trim the addresses of an aggregate email column and drop duplicates."""
    seen: list[str] = []
    for part in value.split(","):
        address = part.strip()
        if address and address.lower() not in (s.lower() for s in seen):
            seen.append(address)
    return ", ".join(seen)


def migrate_0002_normalize_email(db: Database, logger: Any) -> bool:
    """Rewrite the search column of contacts stored by older versions.

    Older versions joined addresses without trimming them and kept
    duplicates coming from different email types.
    """
    try:
        rows = db.get({"!email": None}, "id,email", "contacts")
        changed = 0
        for row in rows:
            normalized = normalize_email(row["email"])
            if normalized != row["email"]:
                db.update(row["id"], ["email"], [normalized], "contacts")
                changed += 1
    except QueryError as exc:
        logger.error("migration.normalize_email_failed", error=exc.message)
        return False

    logger.info("migration.normalize_email_done", contacts=len(rows), changed=changed)
    return True


def register_builtin_steps(registry: MigrationRegistry) -> None:
    registry.register(2, migrate_0002_normalize_email)


__all__ = [
    "normalize_email",
    "migrate_0002_normalize_email",
    "register_builtin_steps",
]
