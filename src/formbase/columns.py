from __future__ import annotations

import logging
from typing import Any

from formbase.config import COLUMN_TYPES
from formbase.errors import DuplicateNameError, InvalidPayloadError, NotFoundError
from formbase.protocols import Storage
from formbase.utils import new_ulid, now_utc, to_iso

logger = logging.getLogger(__name__)


def parse_column_type(value: Any) -> str:
    column_type = str(value or "").strip().upper()
    if column_type not in COLUMN_TYPES:
        raise InvalidPayloadError(f"Invalid column type: {value}")
    return column_type


def list_columns(storage: Storage, database_id: str) -> list[dict[str, Any]]:
    return storage.columns.list_columns(database_id)


def add_column(
    storage: Storage, database_id: str, name: str, column_type: str, is_unique: bool = False
) -> dict[str, Any]:
    if storage.columns.find_by_name(database_id, name):
        raise DuplicateNameError("Column with this name already exists")
    max_order = storage.columns.max_order(database_id)
    column = {
        "id": new_ulid(),
        "database_id": database_id,
        "name": name,
        "type": column_type,
        "is_unique": bool(is_unique),
        "order": 0 if max_order is None else max_order + 1,
        "created_at": now_utc(),
    }
    storage.columns.create_column(column)
    return column


def get_column(storage: Storage, database_id: str, column_id: str) -> dict[str, Any]:
    column = storage.columns.get_column(column_id, database_id)
    if not column:
        raise NotFoundError("Column not found")
    return column


def update_column(
    storage: Storage, database_id: str, column_id: str, payload: dict[str, Any]
) -> dict[str, Any]:
    """Apply only the provided fields; ``order`` never changes here."""
    column = get_column(storage, database_id, column_id)
    updates: dict[str, Any] = {}
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise InvalidPayloadError("Column name is required")
        if name != column["name"] and storage.columns.find_by_name(database_id, name):
            raise DuplicateNameError("Column with this name already exists")
        updates["name"] = name
    if "type" in payload:
        updates["type"] = parse_column_type(payload.get("type"))
    if "is_unique" in payload:
        updates["is_unique"] = bool(payload.get("is_unique"))
    if not updates:
        return column
    return storage.columns.update_column(column_id, updates)


def delete_column(storage: Storage, database_id: str, column_id: str) -> int:
    """Remove a column and strip its key from archived rows.

    Active rows keep the key. Rows are rewritten one at a time, so a failure
    part-way leaves earlier rows stripped and later ones untouched.
    """
    column = get_column(storage, database_id, column_id)
    storage.columns.delete_column(column_id)

    stripped = 0
    for row in storage.rows.list_rows([database_id], deleted=True):
        data = row.get("data") or {}
        if column["name"] not in data:
            continue
        remaining = {key: value for key, value in data.items() if key != column["name"]}
        storage.rows.update_row(row["id"], {"data": remaining})
        stripped += 1
    if stripped:
        logger.info(
            "Stripped column %s from %d archived rows of database %s",
            column["name"],
            stripped,
            database_id,
        )
    return stripped


def column_output(column: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": column["id"],
        "database_id": column["database_id"],
        "name": column["name"],
        "type": column["type"],
        "is_unique": bool(column["is_unique"]),
        "order": column["order"],
        "created_at": to_iso(column.get("created_at")),
    }
