from __future__ import annotations

from formbase.config import Settings, ensure_dirs
from formbase.protocols import Storage
from formbase.repo_json import JSONStorage
from formbase.repo_sqlite import SQLiteStorage


def init_storage(settings: Settings) -> Storage:
    ensure_dirs(settings)
    if settings.storage_backend == "json":
        return JSONStorage(settings.json_path)
    return SQLiteStorage(settings.sqlite_path)
