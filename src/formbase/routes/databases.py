from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from formbase.auth import Principal, current_user
from formbase.columns import (
    add_column,
    column_output,
    delete_column,
    list_columns,
    parse_column_type,
    update_column,
)
from formbase.databases import (
    add_row,
    create_database,
    database_output,
    get_database,
    list_rows,
    rename_database,
    require_data,
    require_name,
    row_output,
    update_row,
)
from formbase.lifecycle import DatabaseLifecycle, RowLifecycle
from formbase.protocols import Scope
from formbase.routes.common import get_storage, read_payload

router = APIRouter(prefix="/api/databases")


@router.get("", tags=["api/databases"])
async def api_list_databases(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    databases = storage.databases.list_databases(Scope.active(user.id))
    return JSONResponse({"databases": [database_output(db) for db in databases]})


@router.post("", tags=["api/databases"])
async def api_create_database(
    request: Request, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    payload = await read_payload(request)
    database = create_database(storage, user.id, require_name(payload))
    return JSONResponse(
        {"message": "Database created successfully", "database": database_output(database)},
        status_code=201,
    )


@router.get("/{database_id}", tags=["api/databases"])
async def api_get_database(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    database = get_database(storage, user.id, database_id)
    columns = list_columns(storage, database_id)
    return JSONResponse(
        {
            "database": database_output(database),
            "columns": [column_output(column) for column in columns],
        }
    )


@router.put("/{database_id}", tags=["api/databases"])
async def api_update_database(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    payload = await read_payload(request)
    database = rename_database(storage, user.id, database_id, require_name(payload))
    return JSONResponse(
        {"message": "Database updated successfully", "database": database_output(database)}
    )


@router.delete("/{database_id}", tags=["api/databases"])
async def api_delete_database(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    DatabaseLifecycle(get_storage(request), user.id).archive(database_id)
    return JSONResponse({"message": "Database deleted successfully"})


@router.post("/{database_id}/columns", tags=["api/columns"])
async def api_add_column(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    get_database(storage, user.id, database_id)
    payload = await read_payload(request)
    column = add_column(
        storage,
        database_id,
        require_name(payload),
        parse_column_type(payload.get("type")),
        bool(payload.get("is_unique", False)),
    )
    return JSONResponse(
        {"message": "Column added successfully", "column": column_output(column)},
        status_code=201,
    )


@router.put("/{database_id}/columns/{column_id}", tags=["api/columns"])
async def api_update_column(
    request: Request, database_id: str, column_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    get_database(storage, user.id, database_id)
    payload = await read_payload(request)
    column = update_column(storage, database_id, column_id, payload)
    return JSONResponse(
        {"message": "Column updated successfully", "column": column_output(column)}
    )


@router.delete("/{database_id}/columns/{column_id}", tags=["api/columns"])
async def api_delete_column(
    request: Request, database_id: str, column_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    get_database(storage, user.id, database_id)
    delete_column(storage, database_id, column_id)
    return JSONResponse({"message": "Column deleted successfully"})


@router.get("/{database_id}/rows", tags=["api/rows"])
async def api_list_rows(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    get_database(storage, user.id, database_id)
    params = request.query_params
    rows = list_rows(
        storage,
        database_id,
        filters=params.get("filters"),
        sort_by=params.get("sort_by"),
        sort_order=params.get("sort_order", "asc"),
    )
    return JSONResponse({"rows": [row_output(row) for row in rows]})


@router.post("/{database_id}/rows", tags=["api/rows"])
async def api_add_row(
    request: Request, database_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    get_database(storage, user.id, database_id)
    payload = await read_payload(request)
    row = add_row(storage, database_id, require_data(payload))
    return JSONResponse(
        {"message": "Row added successfully", "row": row_output(row)}, status_code=201
    )


@router.put("/{database_id}/rows/{row_id}", tags=["api/rows"])
async def api_update_row(
    request: Request, database_id: str, row_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    storage = get_storage(request)
    get_database(storage, user.id, database_id)
    payload = await read_payload(request)
    row = update_row(storage, database_id, row_id, require_data(payload))
    return JSONResponse({"message": "Row updated successfully", "row": row_output(row)})


@router.delete("/{database_id}/rows/{row_id}", tags=["api/rows"])
async def api_delete_row(
    request: Request, database_id: str, row_id: str, user: Principal = Depends(current_user)
) -> JSONResponse:
    RowLifecycle(get_storage(request), user.id).archive(database_id, row_id)
    return JSONResponse({"message": "Row deleted successfully"})
