from __future__ import annotations

from typing import Any

from formbase.errors import DuplicateValueError
from formbase.protocols import Storage


def check_unique(
    storage: Storage,
    database_id: str,
    payload: dict[str, Any],
    exclude_row_id: str | None = None,
) -> None:
    """Raise DuplicateValueError for the first unique column whose value is taken.

    Falsy values are never checked and archived rows are out of scope, so an
    archived row's value can be reused at once.
    """
    unique_columns = [
        column for column in storage.columns.list_columns(database_id) if column["is_unique"]
    ]
    candidates = [column for column in unique_columns if payload.get(column["name"])]
    if not candidates:
        return

    existing = [
        row
        for row in storage.rows.list_rows([database_id], deleted=False)
        if row["id"] != exclude_row_id
    ]
    for column in candidates:
        name = column["name"]
        value = payload[name]
        for row in existing:
            data = row.get("data") or {}
            if name in data and _same_value(data[name], value):
                raise DuplicateValueError(name)


def _same_value(left: Any, right: Any) -> bool:
    # Strict equality: 1 and "1" differ, as do 1 and True. Decoded objects
    # and arrays never match, even with equal contents.
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right
