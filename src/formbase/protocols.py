from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Protocol


class EntityState(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"
    PURGED = "purged"


@dataclass(frozen=True)
class Scope:
    """Ownership and lifecycle filter passed to every owner-scoped query.

    ``state`` selects active records, archived records, or both when None.
    """

    owner_id: str
    state: EntityState | None = EntityState.ACTIVE

    @classmethod
    def active(cls, owner_id: str) -> Scope:
        return cls(owner_id, EntityState.ACTIVE)

    @classmethod
    def archived(cls, owner_id: str) -> Scope:
        return cls(owner_id, EntityState.DELETED)

    @classmethod
    def any(cls, owner_id: str) -> Scope:
        return cls(owner_id, None)

    def admits(self, record: dict[str, Any]) -> bool:
        if record.get("user_id") != self.owner_id:
            return False
        if self.state is None:
            return True
        deleted = record.get("deleted_at") is not None
        return deleted if self.state is EntityState.DELETED else not deleted


class DatabaseRepository(Protocol):
    def list_databases(self, scope: Scope) -> list[dict[str, Any]]: ...

    def list_all_databases(self, deleted: bool | None = None) -> list[dict[str, Any]]: ...

    def get_database(self, database_id: str, scope: Scope) -> dict[str, Any] | None: ...

    def find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None = None
    ) -> list[dict[str, Any]]: ...

    def create_database(self, database: dict[str, Any]) -> None: ...

    def update_database(self, database_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...

    def set_deleted_at(self, database_ids: list[str], value: datetime | None) -> int: ...

    def delete_databases(self, database_ids: list[str]) -> int: ...


class ColumnRepository(Protocol):
    def list_columns(self, database_id: str) -> list[dict[str, Any]]: ...

    def get_column(self, column_id: str, database_id: str) -> dict[str, Any] | None: ...

    def find_by_name(self, database_id: str, name: str) -> dict[str, Any] | None: ...

    def max_order(self, database_id: str) -> int | None: ...

    def create_column(self, column: dict[str, Any]) -> None: ...

    def update_column(self, column_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...

    def delete_column(self, column_id: str) -> None: ...

    def delete_for_databases(self, database_ids: list[str]) -> int: ...


class RowRepository(Protocol):
    def list_rows(
        self, database_ids: list[str], deleted: bool | None = False
    ) -> list[dict[str, Any]]: ...

    def get_row(self, row_id: str) -> dict[str, Any] | None: ...

    def get_rows(self, row_ids: list[str]) -> list[dict[str, Any]]: ...

    def create_row(self, row: dict[str, Any]) -> None: ...

    def update_row(self, row_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...

    def set_deleted_at(self, row_ids: list[str], value: datetime | None) -> int: ...

    def stamp_database_rows(self, database_id: str, value: datetime) -> int: ...

    def delete_rows(self, row_ids: list[str]) -> int: ...

    def delete_for_databases(self, database_ids: list[str]) -> int: ...


class FormRepository(Protocol):
    def list_forms(self, scope: Scope) -> list[dict[str, Any]]: ...

    def get_form(self, form_id: str, scope: Scope) -> dict[str, Any] | None: ...

    def get_published_form(self, form_id: str) -> dict[str, Any] | None: ...

    def find_by_names(
        self, names: Iterable[str], scope: Scope, exclude_id: str | None = None
    ) -> list[dict[str, Any]]: ...

    def create_form(self, form: dict[str, Any]) -> None: ...

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any]: ...

    def set_deleted_at(self, form_ids: list[str], value: datetime | None) -> int: ...

    def delete_forms(self, form_ids: list[str]) -> int: ...


class SubmissionRepository(Protocol):
    def list_submissions(self, form_ids: list[str]) -> list[dict[str, Any]]: ...

    def create_submission(self, submission: dict[str, Any]) -> None: ...

    def delete_for_forms(self, form_ids: list[str]) -> int: ...


class Storage(Protocol):
    databases: DatabaseRepository
    columns: ColumnRepository
    rows: RowRepository
    forms: FormRepository
    submissions: SubmissionRepository
