from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.shared.exceptions import (
    AppError,
    ConflictError,
    InvariantViolation,
    NotAuthorized,
    NotFound,
    PreconditionFailed,
    ValidationError,
)


logger = structlog.get_logger(__name__)

STATUS_BY_ERROR: dict[type[AppError], int] = {
    ValidationError: 400,
    NotAuthorized: 403,
    NotFound: 404,
    ConflictError: 409,
    PreconditionFailed: 412,
    InvariantViolation: 422,
}


def status_for(exc: AppError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    code = status_for(exc)
    logger.info(
        "http.domain_error",
        path=request.url.path,
        status_code=code,
        error_type=type(exc).__name__,
        detail=str(exc),
    )
    return JSONResponse(status_code=code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
