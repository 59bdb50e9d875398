from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field


API_VERSION = "v1"
REQUEST_ID_HEADER = "X-Request-Id"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)


class ErrorDetail(BaseModel):
    # Stable machine code, human message, optional structured context.
    code: str
    message: str
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


class LegacyEnvelope(BaseModel, Generic[T]):
    # Shape served on the unversioned aliases used by the old admin panel.
    success: bool = True
    data: T


class LegacyErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorDetail


def get_request_id(request: Request) -> str:
    # Middleware normally sets this; fall back to the header, then a fresh id.
    request_id = getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)
    if not request_id:
        request_id = str(uuid4())
    request.state.request_id = request_id
    return request_id


def is_versioned_request(request: Request) -> bool:
    return request.url.path.startswith(f"/{API_VERSION}/")


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    if not is_versioned_request(request):
        return {"success": True, "data": data}
    meta = ResponseMeta(request_id=get_request_id(request))
    return {"data": data, "meta": meta.model_dump()}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error = ErrorDetail(code=code, message=message, details=details).model_dump(exclude_none=True)
    if not is_versioned_request(request):
        return {"success": False, "error": error}
    meta = ResponseMeta(request_id=get_request_id(request))
    return {"error": error, "meta": meta.model_dump()}


def envelope_for(model: type[BaseModel]) -> Any:
    # One response_model covering both the /v1 envelope and the legacy alias shape.
    return SuccessEnvelope[model] | LegacyEnvelope[model]
