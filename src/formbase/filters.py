"""In-memory filtering and sorting of database rows.

Row payloads are schemaless JSON objects, so every comparison works on the
text form of a value (see ``value_to_text``). Filters and sorts run after the
full row set of a database has been loaded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Protocol
from urllib.parse import unquote

import orjson
from pyuca import Collator

from formbase.utils import dumps_json

logger = logging.getLogger(__name__)

OPERATORS = ("equals", "contains", "starts_with", "ends_with")


def value_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return dumps_json(value)
    return str(value)


class Predicate(Protocol):
    def matches(self, data: dict[str, Any]) -> bool: ...


@dataclass(frozen=True)
class FilterClause:
    column: str
    operator: str
    value: str

    def matches(self, data: dict[str, Any]) -> bool:
        # Rows created before the column existed are never hidden.
        if self.column not in data:
            return True
        text = value_to_text(data[self.column]).lower()
        needle = self.value.lower()
        if self.operator == "equals":
            return text == needle
        if self.operator == "contains":
            return needle in text
        if self.operator == "starts_with":
            return text.startswith(needle)
        if self.operator == "ends_with":
            return text.endswith(needle)
        return True


@dataclass(frozen=True)
class TextSearch:
    term: str

    def matches(self, data: dict[str, Any]) -> bool:
        needle = self.term.strip().lower()
        if not needle:
            return True
        return any(needle in value_to_text(value).lower() for value in data.values())


@dataclass(frozen=True)
class AllOf:
    predicates: tuple[Predicate, ...] = ()

    def matches(self, data: dict[str, Any]) -> bool:
        return all(predicate.matches(data) for predicate in self.predicates)


def _load_filter_json(raw: str) -> Any:
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        # Clients sometimes encode the array twice.
        return orjson.loads(unquote(raw))


def parse_filters(raw: Any) -> list[FilterClause]:
    """Parse a JSON array of ``{column, operator, value}`` clauses.

    Malformed input disables filtering for the request instead of failing it.
    """
    if not raw:
        return []
    try:
        items = _load_filter_json(raw) if isinstance(raw, str) else raw
    except (ValueError, TypeError):
        logger.debug("Ignoring malformed filters: %r", raw)
        return []
    if not isinstance(items, list):
        logger.debug("Ignoring non-list filters: %r", raw)
        return []

    clauses: list[FilterClause] = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("column"), str):
            logger.debug("Ignoring filters with malformed clause: %r", item)
            return []
        clauses.append(
            FilterClause(
                column=item["column"],
                operator=str(item.get("operator") or ""),
                value=value_to_text(item.get("value")),
            )
        )
    return clauses


def build_predicate(clauses: Iterable[Predicate], search: str = "") -> AllOf:
    predicates: list[Predicate] = list(clauses)
    if search.strip():
        predicates.append(TextSearch(search))
    return AllOf(tuple(predicates))


def apply_filters(rows: list[dict[str, Any]], predicate: Predicate) -> list[dict[str, Any]]:
    return [row for row in rows if predicate.matches(row.get("data") or {})]


@lru_cache(maxsize=1)
def _collator() -> Collator:
    return Collator()


def sort_key(row: dict[str, Any], column: str) -> tuple[tuple[int, ...], str]:
    """Unicode collation order (accents and case are secondary to the base letter)."""
    text = value_to_text((row.get("data") or {}).get(column))
    return (_collator().sort_key(text), text)


def sort_rows(
    rows: list[dict[str, Any]], sort_by: str | None, sort_order: str | None = "asc"
) -> list[dict[str, Any]]:
    if not sort_by:
        return list(rows)
    reverse = str(sort_order or "asc").lower() == "desc"
    return sorted(rows, key=lambda row: sort_key(row, sort_by), reverse=reverse)


def query_rows(
    rows: list[dict[str, Any]],
    filters: Any = None,
    sort_by: str | None = None,
    sort_order: str | None = "asc",
    search: str = "",
) -> list[dict[str, Any]]:
    predicate = build_predicate(parse_filters(filters), search)
    return sort_rows(apply_filters(rows, predicate), sort_by, sort_order)
