from __future__ import annotations

from typing import Any

from dbvault.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message, details=details)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _error_response(
        "Invalid backup name or missing restore confirmation",
        code="CONFIRMATION_REQUIRED",
        message="Restore requires explicit confirmation",
        details={"example": {"confirm": True}},
    ),
    401: _error_response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token"),
    404: _error_response("Backup not found", code="NOT_FOUND", message="Backup file not found"),
    409: _error_response(
        "Another create/restore is running",
        code="OPERATION_IN_PROGRESS",
        message="A backup create is already in progress",
        details={"operation": "restore", "in_progress": "create"},
    ),
    422: _error_response("Validation error", code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    500: _error_response(
        "Dump/restore utility or storage failure",
        code="DUMP_FAILED",
        message="pg_dump exited with status 1",
        details={"reason": "exit_code", "returncode": 1, "stderr_tail": "connection refused"},
    ),
}
