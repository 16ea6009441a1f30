from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator

from filelock import FileLock
from tinydb import Query, TinyDB

from formbase.protocols import Scope
from formbase.utils import parse_dt, to_iso

_DATETIME_KEYS = {"created_at", "updated_at", "deleted_at"}


def _to_record(item: dict[str, Any]) -> dict[str, Any]:
    record: dict[str, Any] = {}
    for key, value in item.items():
        if key in _DATETIME_KEYS:
            record[key] = to_iso(value) if isinstance(value, datetime) else value
        else:
            record[key] = value
    return record


def _with_dates(record: dict[str, Any]) -> dict[str, Any]:
    return {key: parse_dt(record.get(key)) for key in _DATETIME_KEYS if key in record}


def _newest_first(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(items, key=lambda x: (x["created_at"], x["id"]), reverse=True)


class JSONRepoBase:
    table_name = ""

    def __init__(self, path: Path, lock: FileLock) -> None:
        self._path = path
        self._lock = lock

    @contextmanager
    def _db(self) -> Iterator[TinyDB]:
        with self._lock:
            db = TinyDB(self._path)
            try:
                yield db
            finally:
                db.close()

    def _search(self, cond: Any) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table(self.table_name).search(cond)
        return [self._from_record(item) for item in items]

    def _get(self, cond: Any) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table(self.table_name).get(cond)
        return self._from_record(item) if item else None

    def _update(self, item_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        with self._db() as db:
            table = db.table(self.table_name)
            item = table.get(Query().id == item_id)
            if not item:
                raise KeyError(item_id)
            item.update(_to_record(updates))
            table.update(item, Query().id == item_id)
        return self._from_record(item)

    def _stamp(self, cond: Any, value: datetime | None) -> int:
        with self._db() as db:
            updated = db.table(self.table_name).update({"deleted_at": to_iso(value)}, cond)
        return len(updated)

    def _remove(self, cond: Any) -> int:
        with self._db() as db:
            removed = db.table(self.table_name).remove(cond)
        return len(removed)

    def _insert(self, item: dict[str, Any]) -> None:
        with self._db() as db:
            db.table(self.table_name).insert(_to_record(item))

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError


class JSONOwnedRepo(JSONRepoBase):
    def _scoped(self, scope: Scope, cond: Any = None) -> list[dict[str, Any]]:
        base = Query().user_id == scope.owner_id
        items = self._search(base & cond if cond is not None else base)
        return [item for item in items if scope.admits(item)]

    def _find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None
    ) -> list[dict[str, Any]]:
        items = self._scoped(scope, Query().name.one_of(list(names)))
        return [item for item in items if item["id"] != exclude_id]


class JSONDatabaseRepo(JSONOwnedRepo):
    table_name = "databases"

    def list_databases(self, scope: Scope) -> list[dict[str, Any]]:
        return _newest_first(self._scoped(scope))

    def list_all_databases(self, deleted: bool | None = None) -> list[dict[str, Any]]:
        items = self._search(Query().id.exists())
        if deleted is None:
            return items
        return [item for item in items if (item["deleted_at"] is not None) == deleted]

    def get_database(self, database_id: str, scope: Scope) -> dict[str, Any] | None:
        items = self._scoped(scope, Query().id == database_id)
        return items[0] if items else None

    def find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None = None
    ) -> list[dict[str, Any]]:
        return self._find_by_names(names, scope, exclude_id)

    def create_database(self, database: dict[str, Any]) -> None:
        self._insert({**database, "deleted_at": database.get("deleted_at")})

    def update_database(self, database_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        return self._update(database_id, updates)

    def set_deleted_at(self, database_ids: list[str], value: datetime | None) -> int:
        return self._stamp(Query().id.one_of(database_ids), value)

    def delete_databases(self, database_ids: list[str]) -> int:
        return self._remove(Query().id.one_of(database_ids))

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "user_id": record["user_id"],
            "name": record.get("name", ""),
            **_with_dates(record),
            "deleted_at": parse_dt(record.get("deleted_at")),
        }


class JSONColumnRepo(JSONRepoBase):
    table_name = "database_columns"

    def list_columns(self, database_id: str) -> list[dict[str, Any]]:
        items = self._search(Query().database_id == database_id)
        return sorted(items, key=lambda x: x["order"])

    def get_column(self, column_id: str, database_id: str) -> dict[str, Any] | None:
        return self._get((Query().id == column_id) & (Query().database_id == database_id))

    def find_by_name(self, database_id: str, name: str) -> dict[str, Any] | None:
        return self._get((Query().database_id == database_id) & (Query().name == name))

    def max_order(self, database_id: str) -> int | None:
        orders = [item["order"] for item in self.list_columns(database_id)]
        return max(orders) if orders else None

    def create_column(self, column: dict[str, Any]) -> None:
        self._insert(column)

    def update_column(self, column_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        return self._update(column_id, updates)

    def delete_column(self, column_id: str) -> None:
        self._remove(Query().id == column_id)

    def delete_for_databases(self, database_ids: list[str]) -> int:
        return self._remove(Query().database_id.one_of(database_ids))

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "database_id": record["database_id"],
            "name": record.get("name", ""),
            "type": record.get("type", "TEXT"),
            "is_unique": bool(record.get("is_unique", False)),
            "order": record.get("order", 0),
            "created_at": parse_dt(record.get("created_at")),
        }


class JSONRowRepo(JSONRepoBase):
    table_name = "database_rows"

    def list_rows(
        self, database_ids: list[str], deleted: bool | None = False
    ) -> list[dict[str, Any]]:
        items = self._search(Query().database_id.one_of(database_ids))
        if deleted is not None:
            items = [item for item in items if (item["deleted_at"] is not None) == deleted]
        return _newest_first(items)

    def get_row(self, row_id: str) -> dict[str, Any] | None:
        return self._get(Query().id == row_id)

    def get_rows(self, row_ids: list[str]) -> list[dict[str, Any]]:
        return self._search(Query().id.one_of(row_ids))

    def create_row(self, row: dict[str, Any]) -> None:
        self._insert({**row, "deleted_at": row.get("deleted_at")})

    def update_row(self, row_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        return self._update(row_id, updates)

    def set_deleted_at(self, row_ids: list[str], value: datetime | None) -> int:
        return self._stamp(Query().id.one_of(row_ids), value)

    def stamp_database_rows(self, database_id: str, value: datetime) -> int:
        return self._stamp(Query().database_id == database_id, value)

    def delete_rows(self, row_ids: list[str]) -> int:
        return self._remove(Query().id.one_of(row_ids))

    def delete_for_databases(self, database_ids: list[str]) -> int:
        return self._remove(Query().database_id.one_of(database_ids))

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "database_id": record["database_id"],
            "data": record.get("data") or {},
            **_with_dates(record),
            "deleted_at": parse_dt(record.get("deleted_at")),
        }


class JSONFormRepo(JSONOwnedRepo):
    table_name = "forms"

    def list_forms(self, scope: Scope) -> list[dict[str, Any]]:
        return _newest_first(self._scoped(scope))

    def get_form(self, form_id: str, scope: Scope) -> dict[str, Any] | None:
        items = self._scoped(scope, Query().id == form_id)
        return items[0] if items else None

    def get_published_form(self, form_id: str) -> dict[str, Any] | None:
        form = self._get(Query().id == form_id)
        if not form or not form["is_published"] or form["deleted_at"] is not None:
            return None
        return form

    def find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None = None
    ) -> list[dict[str, Any]]:
        return self._find_by_names(names, scope, exclude_id)

    def create_form(self, form: dict[str, Any]) -> None:
        self._insert({**form, "deleted_at": form.get("deleted_at")})

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        return self._update(form_id, updates)

    def set_deleted_at(self, form_ids: list[str], value: datetime | None) -> int:
        return self._stamp(Query().id.one_of(form_ids), value)

    def delete_forms(self, form_ids: list[str]) -> int:
        return self._remove(Query().id.one_of(form_ids))

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "user_id": record["user_id"],
            "name": record.get("name", ""),
            "fields": record.get("fields") or [],
            "header_config": record.get("header_config") or {},
            "footer_config": record.get("footer_config") or {},
            "is_published": bool(record.get("is_published", False)),
            **_with_dates(record),
            "deleted_at": parse_dt(record.get("deleted_at")),
        }


class JSONSubmissionRepo(JSONRepoBase):
    table_name = "form_submissions"

    def list_submissions(self, form_ids: list[str]) -> list[dict[str, Any]]:
        items = self._search(Query().form_id.one_of(form_ids))
        return _newest_first(items)

    def create_submission(self, submission: dict[str, Any]) -> None:
        self._insert(submission)

    def delete_for_forms(self, form_ids: list[str]) -> int:
        return self._remove(Query().form_id.one_of(form_ids))

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": record["id"],
            "form_id": record["form_id"],
            "data": record.get("data") or {},
            "created_at": parse_dt(record.get("created_at")),
        }


class JSONStorage:
    def __init__(self, path: Path) -> None:
        self._lock = FileLock(f"{path}.lock")
        self.databases = JSONDatabaseRepo(path, self._lock)
        self.columns = JSONColumnRepo(path, self._lock)
        self.rows = JSONRowRepo(path, self._lock)
        self.forms = JSONFormRepo(path, self._lock)
        self.submissions = JSONSubmissionRepo(path, self._lock)
