from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

import orjson
import ulid


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return ensure_aware(dt).isoformat()


def parse_dt(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str) and value:
        try:
            return ensure_aware(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def dumps_json(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


def loads_json(value: str | None) -> Any:
    if not value:
        return None
    return orjson.loads(value)


def new_ulid() -> str:
    value = ulid.new()
    return getattr(value, "str", str(value))


def parse_positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def paginate(
    items: list[Any], page: Any, limit: Any, default_limit: int
) -> tuple[list[Any], dict[str, int]]:
    resolved_page = parse_positive_int(page, 1)
    resolved_limit = parse_positive_int(limit, default_limit)
    total = len(items)
    start = (resolved_page - 1) * resolved_limit
    return items[start : start + resolved_limit], {
        "page": resolved_page,
        "limit": resolved_limit,
        "total": total,
        "pages": math.ceil(total / resolved_limit) if total else 0,
    }


def is_storable(value: Any) -> bool:
    """True when ``value`` survives the storage encoding (integers are limited to 64 bits)."""
    try:
        orjson.dumps(value)
    except orjson.JSONEncodeError:
        return False
    return True
