"""Inspecting statements sent to a MagicMock DB-API connection."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock


def executed_sql(conn: MagicMock) -> list[str]:
    """SQL texts executed on a mock connection, in order."""
    return [c.args[0] for c in conn.cursor.return_value.execute.call_args_list]


def executed_params(conn: MagicMock) -> list[Any]:
    """Bound parameters per execute() call (None when unbound)."""
    return [
        c.args[1] if len(c.args) > 1 else None
        for c in conn.cursor.return_value.execute.call_args_list
    ]
