"""Condition compiler: structured filters to parameterized WHERE clauses.

``select``/``update``/``delete`` accept the same *conditions* argument:

- ``None``: no filter
- a scalar: shorthand for ``{"id": scalar}``
- a mapping of column spec to value, ANDed together

A column spec is a column name optionally prefixed with ``!`` (negate) and
then ``%`` (case-insensitive pattern match), in that order.

============================  =======  =====================================
value                         flags    clause
============================  =======  =====================================
``None``                      any      ``IS NULL`` / ``IS NOT NULL``
non-empty list                no ``%`` ``IN (…)`` / ``NOT IN (…)``
empty list                    any      :class:`ConditionUsageError`
list                          ``%``    :class:`ConditionUsageError`
scalar                        ``%``    dialect pattern match
scalar                        none     ``=`` / ``<>``
============================  =======  =====================================

Example:
    >>> from carddav_db.dialect import SQLiteDialect
    >>> clause = compile_conditions({"!name": ["a", "b"]}, SQLiteDialect())
    >>> clause.sql
    ' WHERE "name" NOT IN (?, ?)'
    >>> clause.params
    ('a', 'b')
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from carddav_db.dialect import Dialect
from carddav_db.errors import ConditionUsageError

Scalar = Union[str, int, float, bool]
ConditionValue = Union[None, Scalar, list, tuple]
Conditions = Union[None, Scalar, Mapping[str, ConditionValue]]


@dataclass(frozen=True)
class ColumnSpec:
    """A parsed column spec such as ``!%email``."""

    column: str
    negate: bool = False
    pattern: bool = False

    @classmethod
    def parse(cls, spec: str) -> ColumnSpec:
        negate = spec.startswith("!")
        if negate:
            spec = spec[1:]
        pattern = spec.startswith("%")
        if pattern:
            spec = spec[1:]
        if not spec:
            raise ConditionUsageError("Condition without column name")
        return cls(column=spec, negate=negate, pattern=pattern)


@dataclass(frozen=True)
class WhereClause:
    """A compiled WHERE clause.

    ``sql`` is empty or starts with ``" WHERE "`` so it can be appended to
    a statement directly; ``params`` are bound in order of appearance.
    """

    sql: str = ""
    params: tuple = ()

    def __bool__(self) -> bool:
        return bool(self.sql)

    def render(self, dialect: Dialect) -> str:
        """Inline the parameters as quoted literals, for log output."""
        if not self.params:
            return self.sql
        marker = dialect.placeholder()
        parts = self.sql.split(marker)
        if len(parts) != len(self.params) + 1:
            return self.sql
        rendered = [parts[0]]
        for value, rest in zip(self.params, parts[1:]):
            rendered.append(dialect.quote(value))
            rendered.append(rest)
        return "".join(rendered)


def _compile_one(spec: ColumnSpec, value: ConditionValue, dialect: Dialect) -> tuple[str, tuple]:
    column = dialect.quote_identifier(spec.column)

    if value is None:
        return (f"{column} IS NOT NULL" if spec.negate else f"{column} IS NULL"), ()

    if isinstance(value, (list, tuple)):
        if not value:
            raise ConditionUsageError(f"Condition on {spec.column}: empty values list provided")
        if spec.pattern:
            raise ConditionUsageError(
                f"Condition on {spec.column}: pattern match only supported for a single value"
            )
        operator = "NOT IN" if spec.negate else "IN"
        return f"{column} {operator} ({dialect.placeholders(len(value))})", tuple(value)

    if spec.pattern:
        return f"{dialect.pattern_match(column, spec.negate)} {dialect.placeholder()}", (value,)

    operator = "<>" if spec.negate else "="
    return f"{column} {operator} {dialect.placeholder()}", (value,)


def compile_conditions(conditions: Conditions, dialect: Dialect) -> WhereClause:
    """Compile *conditions* into a :class:`WhereClause` for *dialect*.

    Raises:
        ConditionUsageError: For an empty value list, a pattern flag on a
            list, or a column spec without a column name.
    """
    if conditions is None:
        return WhereClause()

    if not isinstance(conditions, Mapping):
        conditions = {"id": conditions}

    clauses: list[str] = []
    params: list[Any] = []
    for field, value in conditions.items():
        sql, values = _compile_one(ColumnSpec.parse(field), value, dialect)
        clauses.append(sql)
        params.extend(values)

    if not clauses:
        return WhereClause()
    return WhereClause(sql=" WHERE " + " AND ".join(clauses), params=tuple(params))


__all__ = [
    "ColumnSpec",
    "Conditions",
    "WhereClause",
    "compile_conditions",
]
