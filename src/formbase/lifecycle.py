"""Soft-delete state machine for databases, rows and forms.

Every record is ``active`` while its ``deleted_at`` is unset and ``deleted``
once it is stamped; ``purged`` records no longer exist. All transitions for an
entity kind go through one lifecycle class, which re-fetches the target in the
state the transition requires, scoped to the requesting user. A miss is always
reported as not-found.

Archiving a database is a two-step saga with no surrounding transaction:

1. stamp the database's ``deleted_at``;
2. stamp every row of the database with the same timestamp.

A failure after step 1 leaves an archived database with active rows.
``find_inconsistent_rows`` lists exactly those rows and ``reconcile`` repairs
them. Purging runs children first (rows, columns, then the database, or
submissions then the form), so a failure part-way leaves an archived parent
with fewer children, never orphaned children.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from formbase.errors import NameConflictError, NotFoundError, ParentDeletedError, PartialNotFoundError
from formbase.filters import build_predicate, parse_filters
from formbase.protocols import EntityState, Scope, Storage
from formbase.utils import now_utc

logger = logging.getLogger(__name__)


class Action(str, Enum):
    ARCHIVE = "archive"
    RESTORE = "restore"
    PURGE = "purge"


TRANSITIONS: dict[tuple[EntityState, Action], EntityState] = {
    (EntityState.ACTIVE, Action.ARCHIVE): EntityState.DELETED,
    (EntityState.DELETED, Action.RESTORE): EntityState.ACTIVE,
    (EntityState.DELETED, Action.PURGE): EntityState.PURGED,
}


@dataclass(frozen=True)
class Transition:
    state: EntityState | None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is not None


def state_of(record: dict[str, Any] | None) -> EntityState:
    if record is None:
        return EntityState.PURGED
    return EntityState.ACTIVE if record.get("deleted_at") is None else EntityState.DELETED


def required_state(action: Action) -> EntityState:
    for (source, candidate), _ in TRANSITIONS.items():
        if candidate is action:
            return source
    raise ValueError(action)


def next_state(current: EntityState, action: Action) -> Transition:
    target = TRANSITIONS.get((current, action))
    if target is None:
        return Transition(None, f"cannot {action.value} a {current.value} record")
    return Transition(target)


def _advance(record: dict[str, Any], action: Action, not_found: str) -> Transition:
    transition = next_state(state_of(record), action)
    if not transition.ok:
        raise NotFoundError(not_found)
    return transition


def _deleted_first(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(records, key=lambda x: (x["deleted_at"], x["id"]), reverse=True)


def _unique_ids(ids: Iterable[Any]) -> list[str]:
    return list(dict.fromkeys(str(item) for item in ids))


class NamedLifecycle(ABC):
    """Shared rules for entities whose name is unique among a user's active records."""

    label = "Record"

    def __init__(self, storage: Storage, owner_id: str) -> None:
        self.storage = storage
        self.owner_id = owner_id

    @property
    @abstractmethod
    def repo(self) -> Any: ...

    @abstractmethod
    def _get(self, record_id: str, scope: Scope) -> dict[str, Any] | None: ...

    @abstractmethod
    def _list(self, scope: Scope) -> list[dict[str, Any]]: ...

    @abstractmethod
    def _purge(self, record_ids: list[str]) -> None: ...

    def _cascade_archive(self, record: dict[str, Any], stamp: Any) -> None:
        return None

    @property
    def not_found(self) -> str:
        return f"{self.label} not found"

    @property
    def conflict_message(self) -> str:
        noun = self.label.lower()
        return (
            f"A {noun} with this name already exists. "
            f"Please rename the {noun} before restoring."
        )

    def require(self, record_id: str, action: Action) -> dict[str, Any]:
        record = self._get(record_id, Scope(self.owner_id, required_state(action)))
        if not record:
            message = self.not_found
            if action is not Action.ARCHIVE:
                message = f"Deleted {self.label.lower()} not found"
            raise NotFoundError(message)
        return record

    def check_names(self, records: list[dict[str, Any]]) -> None:
        names = [record["name"] for record in records]
        if len(set(names)) != len(names):
            raise NameConflictError(self.conflict_message)
        if names and self.repo.find_by_names(set(names), Scope.active(self.owner_id)):
            raise NameConflictError(self.conflict_message)

    def archive(self, record_id: str) -> Transition:
        record = self.require(record_id, Action.ARCHIVE)
        transition = _advance(record, Action.ARCHIVE, self.not_found)
        stamp = now_utc()
        self.repo.set_deleted_at([record_id], stamp)
        self._cascade_archive(record, stamp)
        return transition

    def restore(self, record_id: str) -> Transition:
        record = self.require(record_id, Action.RESTORE)
        transition = _advance(record, Action.RESTORE, self.not_found)
        self.check_names([record])
        self.repo.set_deleted_at([record_id], None)
        return transition

    def purge(self, record_id: str) -> Transition:
        record = self.require(record_id, Action.PURGE)
        transition = _advance(record, Action.PURGE, self.not_found)
        self._purge([record_id])
        return transition

    def archived(self, search: str = "") -> list[dict[str, Any]]:
        term = search.strip().lower()
        records = self._list(Scope.archived(self.owner_id))
        if term:
            records = [record for record in records if term in record["name"].lower()]
        return _deleted_first(records)

    def resolve(self, ids: Iterable[Any]) -> list[dict[str, Any]]:
        wanted = _unique_ids(ids)
        by_id = {record["id"]: record for record in self._list(Scope.archived(self.owner_id))}
        found = [by_id[record_id] for record_id in wanted if record_id in by_id]
        if len(found) != len(wanted):
            raise PartialNotFoundError(len(wanted), len(found))
        return found

    def apply(self, action: Action, record: dict[str, Any]) -> None:
        """Apply an already-validated bulk transition to one record."""
        if action is Action.RESTORE:
            self.repo.set_deleted_at([record["id"]], None)
        elif action is Action.PURGE:
            self._purge([record["id"]])
        else:
            raise ValueError(action)


class DatabaseLifecycle(NamedLifecycle):
    label = "Database"

    @property
    def repo(self) -> Any:
        return self.storage.databases

    def _get(self, record_id: str, scope: Scope) -> dict[str, Any] | None:
        return self.storage.databases.get_database(record_id, scope)

    def _list(self, scope: Scope) -> list[dict[str, Any]]:
        return self.storage.databases.list_databases(scope)

    def _cascade_archive(self, record: dict[str, Any], stamp: Any) -> None:
        count = self.storage.rows.stamp_database_rows(record["id"], stamp)
        logger.info("Archived database %s with %d rows", record["id"], count)

    def _purge(self, record_ids: list[str]) -> None:
        self.storage.rows.delete_for_databases(record_ids)
        self.storage.columns.delete_for_databases(record_ids)
        self.storage.databases.delete_databases(record_ids)


class FormLifecycle(NamedLifecycle):
    label = "Form"

    @property
    def repo(self) -> Any:
        return self.storage.forms

    def _get(self, record_id: str, scope: Scope) -> dict[str, Any] | None:
        return self.storage.forms.get_form(record_id, scope)

    def _list(self, scope: Scope) -> list[dict[str, Any]]:
        return self.storage.forms.list_forms(scope)

    def _purge(self, record_ids: list[str]) -> None:
        self.storage.submissions.delete_for_forms(record_ids)
        self.storage.forms.delete_forms(record_ids)


class RowLifecycle:
    """Rows carry no owner; ownership is checked through the parent database."""

    not_found = "Row not found"

    def __init__(self, storage: Storage, owner_id: str) -> None:
        self.storage = storage
        self.owner_id = owner_id

    def active_database(self, database_id: str) -> dict[str, Any]:
        database = self.storage.databases.get_database(database_id, Scope.active(self.owner_id))
        if not database:
            raise NotFoundError("Database not found")
        return database

    def require(
        self, row_id: str, action: Action, database_id: str | None = None
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        row = self.storage.rows.get_row(row_id)
        if not row or state_of(row) is not required_state(action):
            raise NotFoundError(self.not_found if action is Action.ARCHIVE else "Deleted row not found")
        if database_id is not None and row["database_id"] != database_id:
            raise NotFoundError(self.not_found)
        database = self.storage.databases.get_database(row["database_id"], Scope.any(self.owner_id))
        if not database:
            raise NotFoundError(self.not_found if action is Action.ARCHIVE else "Deleted row not found")
        return row, database

    def archive(self, database_id: str, row_id: str) -> Transition:
        self.active_database(database_id)
        row, _ = self.require(row_id, Action.ARCHIVE, database_id)
        transition = _advance(row, Action.ARCHIVE, self.not_found)
        self.storage.rows.set_deleted_at([row_id], now_utc())
        return transition

    def restore(self, row_id: str) -> Transition:
        row, database = self.require(row_id, Action.RESTORE)
        transition = _advance(row, Action.RESTORE, self.not_found)
        if state_of(database) is not EntityState.ACTIVE:
            raise ParentDeletedError(
                "Cannot restore row because its database is deleted. "
                "Restore the database first."
            )
        self.storage.rows.set_deleted_at([row_id], None)
        return transition

    def purge(self, row_id: str) -> Transition:
        row, _ = self.require(row_id, Action.PURGE)
        transition = _advance(row, Action.PURGE, self.not_found)
        self.storage.rows.delete_rows([row_id])
        return transition

    def scope_databases(self, database_id: str | None = None) -> list[dict[str, Any]]:
        if database_id:
            return [self.active_database(database_id)]
        return self.storage.databases.list_databases(Scope.active(self.owner_id))

    def archived(
        self, database_id: str | None = None, search: str = "", filters: Any = None
    ) -> list[dict[str, Any]]:
        databases = {database["id"]: database for database in self.scope_databases(database_id)}
        predicate = build_predicate(parse_filters(filters), search)
        rows = self.storage.rows.list_rows(list(databases), deleted=True)
        return _deleted_first(
            [
                {**row, "database_name": databases[row["database_id"]]["name"]}
                for row in rows
                if predicate.matches(row.get("data") or {})
            ]
        )

    def resolve(self, ids: Iterable[Any], database_id: str | None = None) -> list[dict[str, Any]]:
        wanted = _unique_ids(ids)
        databases = {database["id"] for database in self.scope_databases(database_id)}
        found = [
            row
            for row in self.storage.rows.get_rows(wanted)
            if row["database_id"] in databases and state_of(row) is EntityState.DELETED
        ]
        if len(found) != len(wanted):
            raise PartialNotFoundError(len(wanted), len(found))
        return found

    def apply(self, action: Action, row: dict[str, Any]) -> None:
        if action is Action.RESTORE:
            self.storage.rows.set_deleted_at([row["id"]], None)
        elif action is Action.PURGE:
            self.storage.rows.delete_rows([row["id"]])
        else:
            raise ValueError(action)


def _archived_databases(storage: Storage, owner_id: str | None) -> list[dict[str, Any]]:
    if owner_id is None:
        return storage.databases.list_all_databases(deleted=True)
    return storage.databases.list_databases(Scope.archived(owner_id))


def find_inconsistent_rows(storage: Storage, owner_id: str | None = None) -> list[dict[str, Any]]:
    """Active rows whose database is archived, i.e. leftovers of an interrupted cascade."""
    databases = {database["id"]: database for database in _archived_databases(storage, owner_id)}
    rows = storage.rows.list_rows(list(databases), deleted=False)
    return [{**row, "database_name": databases[row["database_id"]]["name"]} for row in rows]


def reconcile(storage: Storage, owner_id: str | None = None) -> int:
    databases = {database["id"]: database for database in _archived_databases(storage, owner_id)}
    pending: dict[str, list[str]] = {}
    for row in find_inconsistent_rows(storage, owner_id):
        pending.setdefault(row["database_id"], []).append(row["id"])

    repaired = 0
    for database_id, row_ids in pending.items():
        repaired += storage.rows.set_deleted_at(row_ids, databases[database_id]["deleted_at"])
        logger.warning(
            "Re-archived %d rows of archived database %s", len(row_ids), database_id
        )
    return repaired
