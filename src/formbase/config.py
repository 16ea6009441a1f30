from __future__ import annotations

import os
from pathlib import Path

COLUMN_TYPES = {
    "TEXT",
    "LARGE_TEXT",
    "JSON",
    "URL",
    "NUMBER",
    "DATE",
    "DATETIME",
    "TIME",
    "SELECT",
    "MULTI_SELECT",
    "PHONE",
    "EMAIL",
    "RATINGS",
}

WIDGET_TYPES = {
    "TEXT",
    "LARGE_TEXT",
    "NUMBER",
    "JSON",
    "URL",
    "DATE",
    "DATETIME",
    "TIME",
    "DROPDOWN",
    "PHONE",
    "EMAIL",
    "RATINGS",
}


class Settings:
    def __init__(self) -> None:
        self.storage_backend = os.getenv("STORAGE_BACKEND", "sqlite").lower()
        self.sqlite_path = Path(os.getenv("SQLITE_PATH", "./data/app.db"))
        self.json_path = Path(os.getenv("JSON_PATH", "./data/jsonstore.json"))
        self.auth_mode = os.getenv("AUTH_MODE", "header").lower()
        self.default_user_id = os.getenv("DEFAULT_USER_ID", "local")
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.host = os.getenv("HOST", "0.0.0.0")
        port_value = os.getenv("PORT", "8000")
        try:
            self.port = int(port_value)
        except ValueError:
            self.port = 8000
        limit_value = os.getenv("PAGE_LIMIT", "10")
        try:
            self.page_limit = max(1, int(limit_value))
        except ValueError:
            self.page_limit = 10


def ensure_dirs(settings: Settings) -> None:
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    settings.json_path.parent.mkdir(parents=True, exist_ok=True)
