from __future__ import annotations

from typing import Any

from formbase.errors import DuplicateNameError, InvalidPayloadError, NotFoundError
from formbase.filters import query_rows
from formbase.protocols import Scope, Storage
from formbase.uniqueness import check_unique
from formbase.utils import is_storable, new_ulid, now_utc, to_iso


def require_name(payload: dict[str, Any]) -> str:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise InvalidPayloadError("Name is required")
    return name


def require_data(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidPayloadError("data must be an object")
    if not is_storable(data):
        raise InvalidPayloadError("data contains a value that cannot be stored")
    return data


def get_database(storage: Storage, owner_id: str, database_id: str) -> dict[str, Any]:
    database = storage.databases.get_database(database_id, Scope.active(owner_id))
    if not database:
        raise NotFoundError("Database not found")
    return database


def _ensure_name_free(
    storage: Storage, owner_id: str, name: str, exclude_id: str | None = None
) -> None:
    if storage.databases.find_by_names([name], Scope.active(owner_id), exclude_id=exclude_id):
        raise DuplicateNameError("Database with this name already exists")


def create_database(storage: Storage, owner_id: str, name: str) -> dict[str, Any]:
    _ensure_name_free(storage, owner_id, name)
    now = now_utc()
    database = {
        "id": new_ulid(),
        "user_id": owner_id,
        "name": name,
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    storage.databases.create_database(database)
    return database


def rename_database(
    storage: Storage, owner_id: str, database_id: str, name: str
) -> dict[str, Any]:
    database = get_database(storage, owner_id, database_id)
    if name == database["name"]:
        return database
    _ensure_name_free(storage, owner_id, name, exclude_id=database_id)
    return storage.databases.update_database(
        database_id, {"name": name, "updated_at": now_utc()}
    )


def list_rows(
    storage: Storage,
    database_id: str,
    filters: Any = None,
    sort_by: str | None = None,
    sort_order: str | None = "asc",
) -> list[dict[str, Any]]:
    rows = storage.rows.list_rows([database_id], deleted=False)
    return query_rows(rows, filters=filters, sort_by=sort_by, sort_order=sort_order)


def add_row(storage: Storage, database_id: str, data: dict[str, Any]) -> dict[str, Any]:
    check_unique(storage, database_id, data)
    now = now_utc()
    row = {
        "id": new_ulid(),
        "database_id": database_id,
        "data": data,
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    storage.rows.create_row(row)
    return row


def update_row(
    storage: Storage, database_id: str, row_id: str, data: dict[str, Any]
) -> dict[str, Any]:
    row = storage.rows.get_row(row_id)
    if not row or row["database_id"] != database_id or row["deleted_at"] is not None:
        raise NotFoundError("Row not found")
    check_unique(storage, database_id, data, exclude_row_id=row_id)
    return storage.rows.update_row(row_id, {"data": data, "updated_at": now_utc()})


def database_output(database: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": database["id"],
        "user_id": database["user_id"],
        "name": database["name"],
        "created_at": to_iso(database.get("created_at")),
        "updated_at": to_iso(database.get("updated_at")),
        "deleted_at": to_iso(database.get("deleted_at")),
    }


def row_output(row: dict[str, Any]) -> dict[str, Any]:
    output = {
        "id": row["id"],
        "database_id": row["database_id"],
        "data": row.get("data") or {},
        "created_at": to_iso(row.get("created_at")),
        "updated_at": to_iso(row.get("updated_at")),
        "deleted_at": to_iso(row.get("deleted_at")),
    }
    if "database_name" in row:
        output["database_name"] = row["database_name"]
    return output
