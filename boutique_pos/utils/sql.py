# utils/sql.py
"""
Parameterized partial-update builder.

Column names are checked against a whitelist supplied by the repository;
values are always bound, never interpolated into the statement text.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping

_UNSET = object()


def build_update(
    table: str,
    changes: Mapping[str, Any],
    *,
    allowed: Iterable[str],
    key_column: str,
    key_value: Any,
    touch_column: str | None = None,
) -> tuple[str, list[Any]] | None:
    """
    Build `UPDATE <table> SET col=:col, ... WHERE <key>=:__key`.

    Entries whose value is the module-level UNSET marker are skipped. A `None`
    value is a real change (sets the column to NULL). Returns None when there
    is nothing to update. Unknown columns raise ValueError.
    """
    allowed_set = set(allowed)
    sets: list[str] = []
    params: list[Any] = []
    for col, value in changes.items():
        if value is _UNSET:
            continue
        if col not in allowed_set:
            raise ValueError(f"Column {col!r} cannot be updated on {table}.")
        sets.append(f"{col} = ?")
        params.append(value)

    if not sets:
        return None
    if touch_column:
        sets.append(f"{touch_column} = CURRENT_TIMESTAMP")

    sql = f"UPDATE {table} SET {', '.join(sets)} WHERE {key_column} = ?"
    params.append(key_value)
    return sql, params


UNSET = _UNSET
