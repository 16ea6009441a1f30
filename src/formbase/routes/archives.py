from __future__ import annotations

from collections import Counter

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from formbase.auth import Principal, current_user
from formbase.bulk import BulkRequest, bulk_transition
from formbase.columns import column_output, list_columns
from formbase.databases import database_output, row_output
from formbase.lifecycle import (
    Action,
    DatabaseLifecycle,
    RowLifecycle,
    find_inconsistent_rows,
    reconcile,
)
from formbase.protocols import Scope
from formbase.routes.common import get_storage, page_params, read_payload
from formbase.utils import paginate

# Registered ahead of the databases router: "/archives/rows" would otherwise
# match "/{database_id}/rows".
router = APIRouter(prefix="/api/databases")

BULK_MESSAGES = {
    Action.RESTORE: "{count} {noun} restored successfully",
    Action.PURGE: "{count} {noun} permanently deleted successfully",
}


async def _bulk(request: Request, user: Principal, kind: str, action: Action, noun: str) -> JSONResponse:
    payload = await read_payload(request)
    result = bulk_transition(
        get_storage(request), user.id, kind, BulkRequest.from_payload(payload), action
    )
    return JSONResponse(
        {
            "message": BULK_MESSAGES[action].format(count=result.count, noun=noun),
            "count": result.count,
            "failed": result.failed,
        }
    )


@router.get("/archives/databases", tags=["api/archives"])
async def api_archived_databases(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    lifecycle = DatabaseLifecycle(get_storage(request), user.id)
    records = lifecycle.archived(request.query_params.get("search", ""))
    items, pagination = paginate(records, *page_params(request))
    return JSONResponse(
        {"databases": [database_output(db) for db in items], "pagination": pagination}
    )


@router.get("/archives/rows/databases", tags=["api/archives"])
async def api_databases_with_archived_rows(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    databases = storage.databases.list_databases(Scope.active(user.id))
    counts = Counter(
        row["database_id"]
        for row in storage.rows.list_rows([db["id"] for db in databases], deleted=True)
    )
    term = request.query_params.get("search", "").strip().lower()
    matching = [
        {**database_output(db), "deleted_rows_count": counts[db["id"]]}
        for db in databases
        if counts[db["id"]] and term in db["name"].lower()
    ]
    items, pagination = paginate(matching, *page_params(request))
    return JSONResponse({"databases": items, "pagination": pagination})


@router.get("/archives/rows", tags=["api/archives"])
async def api_archived_rows(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    params = request.query_params
    database_id = params.get("database_id") or None
    rows = RowLifecycle(storage, user.id).archived(
        database_id, params.get("search", ""), params.get("filters")
    )
    columns = list_columns(storage, database_id) if database_id else []
    items, pagination = paginate(rows, *page_params(request))
    return JSONResponse(
        {
            "columns": [column_output(column) for column in columns],
            "rows": [row_output(row) for row in items],
            "pagination": pagination,
        }
    )


@router.post("/archives/bulk-restore", tags=["api/archives"])
async def api_bulk_restore_databases(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    return await _bulk(request, user, "database", Action.RESTORE, "databases")


@router.post("/archives/bulk-delete", tags=["api/archives"])
async def api_bulk_delete_databases(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    return await _bulk(request, user, "database", Action.PURGE, "databases")


@router.post("/archives/rows/bulk-restore", tags=["api/archives"])
async def api_bulk_restore_rows(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    return await _bulk(request, user, "row", Action.RESTORE, "rows")


@router.post("/archives/rows/bulk-delete", tags=["api/archives"])
async def api_bulk_delete_rows(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    return await _bulk(request, user, "row", Action.PURGE, "rows")


@router.post("/rows/{row_id}/restore", tags=["api/archives"])
async def api_restore_row(
    request: Request, row_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    RowLifecycle(get_storage(request), user.id).restore(row_id)
    return JSONResponse({"message": "Row restored successfully"})


@router.delete("/rows/{row_id}/permanent", tags=["api/archives"])
async def api_purge_row(
    request: Request, row_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    RowLifecycle(get_storage(request), user.id).purge(row_id)
    return JSONResponse({"message": "Row permanently deleted successfully"})


@router.get("/maintenance/inconsistent-rows", tags=["api/maintenance"])
async def api_inconsistent_rows(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    rows = find_inconsistent_rows(get_storage(request), user.id)
    return JSONResponse({"rows": [row_output(row) for row in rows], "count": len(rows)})


@router.post("/maintenance/reconcile", tags=["api/maintenance"])
async def api_reconcile(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    count = reconcile(get_storage(request), user.id)
    return JSONResponse({"message": f"{count} rows re-archived", "count": count})


@router.post("/{database_id}/restore", tags=["api/archives"])
async def api_restore_database(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    DatabaseLifecycle(get_storage(request), user.id).restore(database_id)
    return JSONResponse({"message": "Database restored successfully"})


@router.delete("/{database_id}/permanent", tags=["api/archives"])
async def api_purge_database(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    DatabaseLifecycle(get_storage(request), user.id).purge(database_id)
    return JSONResponse({"message": "Database permanently deleted successfully"})
