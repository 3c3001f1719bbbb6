"""Registry of procedural migration steps.

A migration directory whose 4-digit sequence number has a registered step
is applied by calling that step instead of running SQL scripts.  The
registry is built explicitly at start-up; nothing is resolved from file
names at run time.

Example::

    registry = MigrationRegistry()

    @registry.step(7)
    def migrate_0007(db, logger) -> bool:
        ...
        return True
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from carddav_db.database import Database

# step(db, logger) -> success.  A step that returns False has already
# logged its own error.
MigrationStep = Callable[["Database", Any], bool]


class MigrationRegistry:
    """Maps migration sequence numbers to procedural steps."""

    def __init__(self) -> None:
        self._steps: dict[int, MigrationStep] = {}

    def register(self, number: int, step: MigrationStep) -> None:
        """Register *step* for migration number *number*.

        Raises:
            ValueError: *number* is out of range or already registered.
        """
        if not 0 <= number <= 9999:
            raise ValueError(f"Migration number out of range: {number}")
        if number in self._steps:
            raise ValueError(f"Migration {number:04d} already has a procedural step")
        self._steps[number] = step

    def step(self, number: int) -> Callable[[MigrationStep], MigrationStep]:
        """Decorator form of :meth:`register`."""

        def decorator(func: MigrationStep) -> MigrationStep:
            self.register(number, func)
            return func

        return decorator

    def get(self, number: int) -> MigrationStep | None:
        return self._steps.get(number)

    def numbers(self) -> list[int]:
        return sorted(self._steps)

    def __contains__(self, number: object) -> bool:
        return number in self._steps

    def __len__(self) -> int:
        return len(self._steps)


def default_registry() -> MigrationRegistry:
    """Registry holding the procedural steps shipped with the package."""
    from carddav_db.migrations.steps import register_builtin_steps

    registry = MigrationRegistry()
    register_builtin_steps(registry)
    return registry


__all__ = [
    "MigrationStep",
    "MigrationRegistry",
    "default_registry",
]
