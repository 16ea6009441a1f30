from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from formbase.auth import Principal, current_user
from formbase.protocols import Scope
from formbase.routes.common import get_storage

router = APIRouter()


@router.get("/api/stats", tags=["api/stats"])
async def api_stats(request: Request, user: Principal = Depends(current_user)) -> JSONResponse:
    storage = get_storage(request)
    forms = storage.forms.list_forms(Scope.active(user.id))
    submissions = storage.submissions.list_submissions([form["id"] for form in forms])
    databases = storage.databases.list_databases(Scope.active(user.id))
    return JSONResponse(
        {
            "stats": {
                "forms_created": len(forms),
                "forms_submitted": len(submissions),
                "databases_created": len(databases),
            }
        }
    )


@router.get("/healthz", tags=["system"])
async def healthz() -> JSONResponse:
    return JSONResponse({"status": "ok"})
