from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from dbvault.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbvault.apps.api.response import envelope_for, success_response

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


@router.get("/health", response_model=envelope_for(HealthResponse))
async def health(request: Request) -> dict:
    payload = HealthResponse(status="ok")
    return success_response(request=request, data=payload)
