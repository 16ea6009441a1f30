from __future__ import annotations

from typing import Any

from fastapi import Request

from formbase.errors import InvalidPayloadError
from formbase.protocols import Storage


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


async def read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidPayloadError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Request body must be a JSON object")
    return payload


def page_params(request: Request) -> tuple[Any, Any, int]:
    params = request.query_params
    return params.get("page"), params.get("limit"), request.app.state.settings.page_limit
