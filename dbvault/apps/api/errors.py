from __future__ import annotations

from http import HTTPStatus
import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dbvault.apps.api.response import error_response
from dbvault.core.errors import (
    ArtifactNotFoundError,
    BackupError,
    BackupIOError,
    ConfirmationRequiredError,
    DumpFailedError,
    InvalidArtifactNameError,
    OperationInProgressError,
    RestoreFailedError,
)


logger = logging.getLogger(__name__)

# Framework-raised errors carry no code of their own.
_HTTP_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

# Client mistakes and contention are 4xx; storage and utility failures are 5xx.
BACKUP_ERROR_STATUS: dict[type[BackupError], int] = {
    InvalidArtifactNameError: 400,
    ConfirmationRequiredError: 400,
    ArtifactNotFoundError: 404,
    OperationInProgressError: 409,
    BackupIOError: 500,
    DumpFailedError: 500,
    RestoreFailedError: 500,
}


def status_for_backup_error(exc: BackupError) -> int:
    for error_cls in type(exc).__mro__:
        status_code = BACKUP_ERROR_STATUS.get(error_cls)
        if status_code is not None:
            return status_code
    return 500


def _code_for_status(status_code: int) -> str:
    known = _HTTP_STATUS_CODES.get(status_code)
    if known:
        return known
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return "UNKNOWN_ERROR"


def _unpack_http_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # deps.py raises HTTPException(detail={"code", "message", ...}); plain strings come from Starlette.
    if isinstance(detail, dict):
        extra = {key: value for key, value in detail.items() if key not in ("code", "message")}
        return (
            str(detail.get("code") or _code_for_status(status_code)),
            str(detail.get("message") or "Request failed"),
            extra or None,
        )
    message = detail if isinstance(detail, str) and detail else "Request failed"
    return _code_for_status(status_code), message, None


async def backup_error_handler(request: Request, exc: BackupError) -> JSONResponse:
    status_code = status_for_backup_error(exc)
    if status_code >= 500:
        logger.error(
            "backup_request_failed path=%s code=%s message=%s",
            request.url.path,
            exc.code,
            exc.message,
        )
    else:
        logger.info("backup_request_rejected path=%s code=%s", request.url.path, exc.code)
    payload = error_response(request=request, code=exc.code, message=exc.message, details=exc.details or None)
    return JSONResponse(content=payload, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _unpack_http_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = error_response(
        request=request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": exc.errors()},
    )
    return JSONResponse(content=payload, status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak a traceback to the client.
    logger.exception("unhandled_request_error path=%s", request.url.path)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
