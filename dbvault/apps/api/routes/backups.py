from __future__ import annotations

from datetime import datetime
import logging
import os
from typing import Any, BinaryIO, Iterator
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from dbvault.apps.api.deps import get_backup_manager, get_backup_scheduler, require_admin
from dbvault.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from dbvault.apps.api.response import envelope_for, success_response
from dbvault.services.backup import BackupManager, BackupScheduler


logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK = 64 * 1024

router = APIRouter(
    prefix="/backups",
    tags=["backups"],
    responses=DEFAULT_ERROR_RESPONSES,
    dependencies=[Depends(require_admin)],
)


class ArtifactResponse(BaseModel):
    name: str
    size_bytes: int
    size_mb: str
    created_at: datetime
    modified_at: datetime
    encoded_at: datetime | None = None


class BackupListResponse(BaseModel):
    count: int
    backups: list[ArtifactResponse]
    max_retained: int
    backup_dir: str


class BackupStatsResponse(BaseModel):
    total_backups: int
    total_size_bytes: int
    total_size_mb: str
    oldest: ArtifactResponse | None
    newest: ArtifactResponse | None
    max_retained: int
    backup_dir: str


class BackupCreateResponse(BaseModel):
    artifact: ArtifactResponse
    pruned: list[str]
    prune_errors: list[str]


class BackupVerifyResponse(BaseModel):
    name: str
    valid: bool
    integrity: str
    reasons: list[str]
    size_bytes: int
    has_structure: bool
    has_transaction: bool


class BackupRestoreResponse(BaseModel):
    name: str
    started_at: datetime
    completed_at: datetime
    duration_s: float
    message: str


class BackupDeleteResponse(BaseModel):
    name: str
    message: str


class SchedulerStatusResponse(BaseModel):
    enabled: bool
    running: bool
    backup_in_progress: bool
    current_operation: str | None
    schedule: str
    pattern: str
    timezone: str
    next_run_at: datetime | None
    max_backups: int


@router.get("/list", response_model=envelope_for(BackupListResponse))
async def list_backups(
    request: Request,
    manager: BackupManager = Depends(get_backup_manager),
) -> Any:
    listing = await run_in_threadpool(manager.list)
    payload = BackupListResponse(**listing.to_dict())
    return success_response(request=request, data=payload)


@router.get("/stats", response_model=envelope_for(BackupStatsResponse))
async def backup_stats(
    request: Request,
    manager: BackupManager = Depends(get_backup_manager),
) -> Any:
    stats = await run_in_threadpool(manager.stats)
    payload = BackupStatsResponse(**stats.to_dict())
    return success_response(request=request, data=payload)


@router.get("/scheduler/status", response_model=envelope_for(SchedulerStatusResponse))
async def scheduler_status(
    request: Request,
    scheduler: BackupScheduler = Depends(get_backup_scheduler),
) -> Any:
    payload = SchedulerStatusResponse(**scheduler.status())
    return success_response(request=request, data=payload)


@router.post("/create", response_model=envelope_for(BackupCreateResponse))
async def create_backup(
    request: Request,
    manager: BackupManager = Depends(get_backup_manager),
) -> Any:
    # Runs the dump inline; a concurrent create/restore gets 409 instead of queueing.
    result = await manager.create()
    payload = BackupCreateResponse(**result.to_dict())
    return success_response(request=request, data=payload)


@router.post("/verify/{name}", response_model=envelope_for(BackupVerifyResponse))
async def verify_backup(
    name: str,
    request: Request,
    manager: BackupManager = Depends(get_backup_manager),
) -> Any:
    result = await run_in_threadpool(manager.verify, name)
    payload = BackupVerifyResponse(name=name, **result.to_dict())
    return success_response(request=request, data=payload)


def _iter_artifact(handle: BinaryIO) -> Iterator[bytes]:
    with handle:
        for chunk in iter(lambda: handle.read(_DOWNLOAD_CHUNK), b""):
            yield chunk


@router.get("/download/{name}", response_class=StreamingResponse)
async def download_backup(
    name: str,
    manager: BackupManager = Depends(get_backup_manager),
) -> StreamingResponse:
    # Open before responding: a delete after this point cannot break the stream, one before it is a 404.
    handle = await run_in_threadpool(manager.open, name)
    size = os.fstat(handle.fileno()).st_size
    return StreamingResponse(
        _iter_artifact(handle),
        media_type="application/sql",
        headers={
            "Content-Disposition": f'attachment; filename="{quote(name)}"',
            "Content-Length": str(size),
        },
    )


@router.post("/restore/{name}", response_model=envelope_for(BackupRestoreResponse))
async def restore_backup(
    name: str,
    request: Request,
    body: dict[str, Any] | None = Body(default=None),
    manager: BackupManager = Depends(get_backup_manager),
) -> Any:
    # Pass the raw JSON value through; only the literal `true` confirms.
    confirm = (body or {}).get("confirm")
    result = await manager.restore(name, confirm)
    payload = BackupRestoreResponse(**result.to_dict())
    return success_response(request=request, data=payload)


@router.delete("/{name}", response_model=envelope_for(BackupDeleteResponse))
async def delete_backup(
    name: str,
    request: Request,
    manager: BackupManager = Depends(get_backup_manager),
) -> Any:
    await run_in_threadpool(manager.delete, name)
    payload = BackupDeleteResponse(name=name, message="Backup deleted")
    return success_response(request=request, data=payload)
