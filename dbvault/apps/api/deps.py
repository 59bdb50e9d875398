from __future__ import annotations

import hmac

from fastapi import HTTPException, Request, status

from dbvault.core.config import get_settings
from dbvault.services.backup import BackupManager, BackupScheduler


def get_backup_manager(request: Request) -> BackupManager:
    # The manager is built once in the app lifespan and shared by every request.
    manager = getattr(request.app.state, "backup_manager", None)
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Backup manager is not initialized"},
        )
    return manager


def get_backup_scheduler(request: Request) -> BackupScheduler:
    scheduler = getattr(request.app.state, "backup_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Backup scheduler is not initialized"},
        )
    return scheduler


def require_admin(request: Request) -> None:
    # Bearer-token guard; disabled when no ADMIN_API_TOKEN is configured.
    expected = get_settings().admin_api_token
    if not expected:
        return
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip().encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "AUTH_UNAUTHORIZED", "message": "Missing or invalid bearer token"},
            headers={"WWW-Authenticate": "Bearer"},
        )
