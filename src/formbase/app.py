from __future__ import annotations

from fastapi import FastAPI

from formbase.auth import get_auth_provider
from formbase.config import Settings, ensure_dirs
from formbase.errors import install_error_handlers
from formbase.routes.archives import router as archives_router
from formbase.routes.databases import router as databases_router
from formbase.routes.forms import router as forms_router
from formbase.routes.stats import router as stats_router
from formbase.storage import init_storage


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    ensure_dirs(settings)
    storage = init_storage(settings)
    auth = get_auth_provider(settings)

    app = FastAPI(
        title="formbase",
        openapi_tags=[
            {"name": "api/databases", "description": "REST API: databases"},
            {"name": "api/columns", "description": "REST API: columns"},
            {"name": "api/rows", "description": "REST API: rows"},
            {"name": "api/archives", "description": "REST API: archive, restore, purge"},
            {"name": "api/maintenance", "description": "REST API: archive reconciliation"},
            {"name": "api/forms", "description": "REST API: forms"},
            {"name": "api/submissions", "description": "REST API: submissions"},
            {"name": "public", "description": "Published forms"},
            {"name": "system", "description": "System"},
        ],
    )

    app.state.storage = storage
    app.state.settings = settings
    app.state.auth_provider = auth

    install_error_handlers(app)

    app.include_router(archives_router)
    app.include_router(databases_router)
    app.include_router(forms_router)
    app.include_router(stats_router)

    return app
