"""Bulk restore / permanent delete over archived records.

The target set is resolved first: with ``selectedAll`` it is re-read from the
current archive using the request's search scope and client ids are ignored;
otherwise every supplied id must be archived and owned, or the whole batch
fails before anything changes. Restores then check name conflicts for the
whole set at once.

The mutation phase is best effort: each item is applied on its own and its
outcome recorded, so one failing item does not stop the others.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from formbase.errors import InvalidPayloadError
from formbase.lifecycle import Action, DatabaseLifecycle, FormLifecycle, NamedLifecycle, RowLifecycle
from formbase.protocols import Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkRequest:
    ids: list[str] = field(default_factory=list)
    selected_all: bool = False
    search: str = ""
    database_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> BulkRequest:
        raw_ids = payload.get("ids") or []
        if not isinstance(raw_ids, list):
            raise InvalidPayloadError("ids must be a list")
        selected_all = bool(payload.get("selectedAll", payload.get("selected_all", False)))
        if not selected_all and not raw_ids:
            raise InvalidPayloadError("No items selected")
        return cls(
            ids=[str(item) for item in raw_ids],
            selected_all=selected_all,
            search=str(payload.get("search") or ""),
            database_id=str(payload["database_id"]) if payload.get("database_id") else None,
        )


@dataclass
class BulkResult:
    outcomes: dict[str, str] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return sum(1 for outcome in self.outcomes.values() if outcome == "ok")

    @property
    def failed(self) -> list[str]:
        return [item_id for item_id, outcome in self.outcomes.items() if outcome != "ok"]


def _apply_each(
    lifecycle: NamedLifecycle | RowLifecycle, action: Action, records: list[dict[str, Any]]
) -> BulkResult:
    result = BulkResult()
    for record in records:
        try:
            lifecycle.apply(action, record)
        except Exception as exc:
            logger.warning("Bulk %s failed for %s: %s", action.value, record["id"], exc)
            result.outcomes[record["id"]] = str(exc) or exc.__class__.__name__
        else:
            result.outcomes[record["id"]] = "ok"
    logger.info(
        "Bulk %s applied to %d of %d items", action.value, result.count, len(records)
    )
    return result


def bulk_named(lifecycle: NamedLifecycle, request: BulkRequest, action: Action) -> BulkResult:
    if request.selected_all:
        records = lifecycle.archived(request.search)
    else:
        records = lifecycle.resolve(request.ids)
    if action is Action.RESTORE:
        lifecycle.check_names(records)
    return _apply_each(lifecycle, action, records)


def bulk_rows(lifecycle: RowLifecycle, request: BulkRequest, action: Action) -> BulkResult:
    if request.selected_all:
        records = lifecycle.archived(request.database_id, request.search)
    else:
        records = lifecycle.resolve(request.ids, request.database_id)
    return _apply_each(lifecycle, action, records)


def bulk_transition(
    storage: Storage, owner_id: str, kind: str, request: BulkRequest, action: Action
) -> BulkResult:
    if kind == "database":
        return bulk_named(DatabaseLifecycle(storage, owner_id), request, action)
    if kind == "form":
        return bulk_named(FormLifecycle(storage, owner_id), request, action)
    if kind == "row":
        return bulk_rows(RowLifecycle(storage, owner_id), request, action)
    raise ValueError(kind)
