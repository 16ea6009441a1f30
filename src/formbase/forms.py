from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

from formbase.config import WIDGET_TYPES
from formbase.errors import DuplicateNameError, InvalidPayloadError, NotFoundError
from formbase.protocols import Scope, Storage
from formbase.utils import is_storable, new_ulid, now_utc, to_iso

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
URL_PATTERN = r"^https?://\S+$"

FIELDS_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["id", "type", "label"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "type": {"enum": sorted(WIDGET_TYPES)},
            "label": {"type": "string"},
            "description": {"type": ["string", "null"]},
            "is_required": {"type": "boolean"},
            "order": {"type": "integer"},
            "settings": {"type": "object"},
        },
    },
}

GRID_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "left": {"type": "array"},
        "center": {"type": "array"},
        "right": {"type": "array"},
    },
}


def default_grid_config() -> dict[str, Any]:
    return {"enabled": False, "left": [], "center": [], "right": []}


def _first_error(schema: dict[str, Any], value: Any) -> str | None:
    errors = sorted(Draft7Validator(schema).iter_errors(value), key=lambda err: list(err.path))
    if not errors:
        return None
    error = errors[0]
    location = ".".join(str(part) for part in error.path)
    return f"{location}: {error.message}" if location else error.message


def validate_definition(key: str, value: Any) -> Any:
    schema = FIELDS_SCHEMA if key == "fields" else GRID_SCHEMA
    message = _first_error(schema, value)
    if message:
        raise InvalidPayloadError(f"Invalid {key}: {message}")
    if not is_storable(value):
        raise InvalidPayloadError(f"Invalid {key}: contains a value that cannot be stored")
    return value


def build_property(field: dict[str, Any]) -> dict[str, Any]:
    field_type = field["type"]
    settings = field.get("settings") or {}
    if field_type == "NUMBER":
        prop: dict[str, Any] = {"type": "number"}
    elif field_type == "RATINGS":
        prop = {"type": "number", "minimum": 0}
        if isinstance(settings.get("max_rating"), (int, float)):
            prop["maximum"] = settings["max_rating"]
    elif field_type == "EMAIL":
        prop = {"type": "string", "pattern": EMAIL_PATTERN}
    elif field_type == "URL":
        prop = {"type": "string", "pattern": URL_PATTERN}
    elif field_type == "JSON":
        prop = {}
    else:
        prop = {"type": "string"}

    if field.get("is_required"):
        if prop.get("type") == "string":
            prop["minLength"] = 1
        return prop
    return {"anyOf": [{"type": "null"}, {"const": ""}, prop]}


def schema_from_fields(fields: list[dict[str, Any]]) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    for field in sorted(fields, key=lambda f: f.get("order", 0)):
        properties[field["id"]] = build_property(field)
        if field.get("is_required"):
            required.append(field["id"])
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def get_form(storage: Storage, owner_id: str, form_id: str) -> dict[str, Any]:
    form = storage.forms.get_form(form_id, Scope.active(owner_id))
    if not form:
        raise NotFoundError("Form not found")
    return form


def _ensure_name_free(
    storage: Storage, owner_id: str, name: str, exclude_id: str | None = None
) -> None:
    if storage.forms.find_by_names([name], Scope.active(owner_id), exclude_id=exclude_id):
        raise DuplicateNameError("Form with this name already exists")


def create_form(storage: Storage, owner_id: str, name: str) -> dict[str, Any]:
    _ensure_name_free(storage, owner_id, name)
    now = now_utc()
    form = {
        "id": new_ulid(),
        "user_id": owner_id,
        "name": name,
        "fields": [],
        "header_config": default_grid_config(),
        "footer_config": default_grid_config(),
        "is_published": False,
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    storage.forms.create_form(form)
    return form


def update_form(
    storage: Storage, owner_id: str, form_id: str, payload: dict[str, Any]
) -> dict[str, Any]:
    form = get_form(storage, owner_id, form_id)
    updates: dict[str, Any] = {}
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise InvalidPayloadError("Name is required")
        if name != form["name"]:
            _ensure_name_free(storage, owner_id, name, exclude_id=form_id)
        updates["name"] = name
    for key in ("fields", "header_config", "footer_config"):
        if key in payload:
            updates[key] = validate_definition(key, payload[key])
    if "is_published" in payload:
        updates["is_published"] = bool(payload["is_published"])
    updates["updated_at"] = now_utc()
    return storage.forms.update_form(form_id, updates)


def submit_form(storage: Storage, form_id: str, data: Any) -> dict[str, Any]:
    form = storage.forms.get_published_form(form_id)
    if not form:
        raise NotFoundError("Form not found or not published")
    if not isinstance(data, dict):
        raise InvalidPayloadError("data must be an object")
    if not is_storable(data):
        raise InvalidPayloadError("data contains a value that cannot be stored")
    message = _first_error(schema_from_fields(form["fields"]), data)
    if message:
        raise InvalidPayloadError(f"Validation failed: {message}")
    submission = {
        "id": new_ulid(),
        "form_id": form_id,
        "data": data,
        "created_at": now_utc(),
    }
    storage.submissions.create_submission(submission)
    return submission


def form_output(form: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": form["id"],
        "user_id": form["user_id"],
        "name": form["name"],
        "fields": form.get("fields", []),
        "header_config": form.get("header_config", {}),
        "footer_config": form.get("footer_config", {}),
        "is_published": bool(form.get("is_published")),
        "created_at": to_iso(form.get("created_at")),
        "updated_at": to_iso(form.get("updated_at")),
        "deleted_at": to_iso(form.get("deleted_at")),
    }


def public_form_output(form: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": form["id"],
        "name": form["name"],
        "fields": form.get("fields", []),
        "header_config": form.get("header_config", {}),
        "footer_config": form.get("footer_config", {}),
    }


def submission_output(submission: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": submission["id"],
        "form_id": submission["form_id"],
        "data": submission.get("data", {}),
        "created_at": to_iso(submission.get("created_at")),
    }
