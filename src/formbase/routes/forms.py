from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from formbase.auth import Principal, current_user
from formbase.bulk import BulkRequest, bulk_transition
from formbase.databases import require_name
from formbase.errors import NotFoundError
from formbase.forms import (
    create_form,
    form_output,
    get_form,
    public_form_output,
    submission_output,
    submit_form,
    update_form,
)
from formbase.lifecycle import Action, FormLifecycle
from formbase.protocols import Scope
from formbase.routes.common import get_storage, page_params, read_payload
from formbase.utils import paginate

router = APIRouter(prefix="/api/forms")


@router.get("/public/{form_id}", tags=["public"])
async def api_public_form(request: Request, form_id: str) -> JSONResponse:
    form = get_storage(request).forms.get_published_form(form_id)
    if not form:
        raise NotFoundError("Form not found or not published")
    return JSONResponse({"form": public_form_output(form)})


@router.post("/public/{form_id}/submit", tags=["public"])
async def api_public_submit(request: Request, form_id: str) -> JSONResponse:
    payload = await read_payload(request)
    submission = submit_form(get_storage(request), form_id, payload.get("data"))
    return JSONResponse(
        {"message": "Form submitted successfully", "submission": submission_output(submission)},
        status_code=201,
    )


@router.get("/archives/deleted", tags=["api/archives"])
async def api_archived_forms(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    lifecycle = FormLifecycle(get_storage(request), user.id)
    records = lifecycle.archived(request.query_params.get("search", ""))
    items, pagination = paginate(records, *page_params(request))
    return JSONResponse({"forms": [form_output(form) for form in items], "pagination": pagination})


@router.post("/archives/bulk-restore", tags=["api/archives"])
async def api_bulk_restore_forms(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    payload = await read_payload(request)
    result = bulk_transition(
        get_storage(request), user.id, "form", BulkRequest.from_payload(payload), Action.RESTORE
    )
    return JSONResponse(
        {
            "message": f"{result.count} forms restored successfully",
            "count": result.count,
            "failed": result.failed,
        }
    )


@router.post("/archives/bulk-delete", tags=["api/archives"])
async def api_bulk_delete_forms(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    payload = await read_payload(request)
    result = bulk_transition(
        get_storage(request), user.id, "form", BulkRequest.from_payload(payload), Action.PURGE
    )
    return JSONResponse(
        {
            "message": f"{result.count} forms permanently deleted successfully",
            "count": result.count,
            "failed": result.failed,
        }
    )


@router.get("", tags=["api/forms"])
async def api_list_forms(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    forms = get_storage(request).forms.list_forms(Scope.active(user.id))
    return JSONResponse({"forms": [form_output(form) for form in forms]})


@router.post("", tags=["api/forms"])
async def api_create_form(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    payload = await read_payload(request)
    form = create_form(get_storage(request), user.id, require_name(payload))
    return JSONResponse(
        {"message": "Form created successfully", "form": form_output(form)}, status_code=201
    )


@router.get("/{form_id}", tags=["api/forms"])
async def api_get_form(
    request: Request, form_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    form = get_form(get_storage(request), user.id, form_id)
    return JSONResponse({"form": form_output(form)})


@router.put("/{form_id}", tags=["api/forms"])
async def api_update_form(
    request: Request, form_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    payload = await read_payload(request)
    form = update_form(get_storage(request), user.id, form_id, payload)
    return JSONResponse({"message": "Form updated successfully", "form": form_output(form)})


@router.delete("/{form_id}", tags=["api/forms"])
async def api_delete_form(
    request: Request, form_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    FormLifecycle(get_storage(request), user.id).archive(form_id)
    return JSONResponse({"message": "Form deleted successfully"})


@router.get("/{form_id}/submissions", tags=["api/submissions"])
async def api_list_submissions(
    request: Request, form_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    form = get_form(storage, user.id, form_id)
    submissions = storage.submissions.list_submissions([form["id"]])
    return JSONResponse(
        {"submissions": [submission_output(submission) for submission in submissions]}
    )


@router.post("/{form_id}/restore", tags=["api/archives"])
async def api_restore_form(
    request: Request, form_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    FormLifecycle(get_storage(request), user.id).restore(form_id)
    return JSONResponse({"message": "Form restored successfully"})


@router.delete("/{form_id}/permanent", tags=["api/archives"])
async def api_purge_form(
    request: Request, form_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    FormLifecycle(get_storage(request), user.id).purge(form_id)
    return JSONResponse({"message": "Form permanently deleted successfully"})
