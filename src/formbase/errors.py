from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class FormbaseError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(FormbaseError):
    status_code = 404


class PartialNotFoundError(NotFoundError):
    def __init__(self, requested: int, found: int) -> None:
        super().__init__(
            f"Some items were not found ({found} of {requested} available)"
        )
        self.requested = requested
        self.found = found


class ConflictError(FormbaseError):
    pass


class DuplicateNameError(ConflictError):
    pass


class DuplicateValueError(ConflictError):
    def __init__(self, column: str) -> None:
        super().__init__(f"Duplicate value for unique column: {column}")
        self.column = column


class NameConflictError(ConflictError):
    pass


class ParentDeletedError(ConflictError):
    pass


class InvalidPayloadError(FormbaseError):
    pass


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FormbaseError)
    async def handle_formbase_error(request: Request, exc: FormbaseError) -> JSONResponse:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(HTTPException)
    async def handle_http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": str(exc.detail)},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.middleware("http")
    async def catch_unexpected(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error: %s %s", request.method, request.url.path)
            return JSONResponse({"error": "Internal server error"}, status_code=500)
