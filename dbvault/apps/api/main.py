from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dbvault.apps.api.errors import (
    backup_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from dbvault.apps.api.response import API_VERSION
from dbvault.apps.api.routes.backups import router as backups_router
from dbvault.apps.api.routes.health import router as health_router
from dbvault.core.config import get_settings
from dbvault.core.errors import BackupError
from dbvault.core.logging import configure_logging
from dbvault.services.backup import BackupManager, BackupScheduler, ScheduleConfig


logger = logging.getLogger(__name__)


def create_app(
    *,
    manager: BackupManager | None = None,
    scheduler: BackupScheduler | None = None,
) -> FastAPI:
    """Build the admin API.

    The backup manager and scheduler live for the lifetime of the app: built
    (or taken from the caller) at startup, the scheduler stopped at shutdown.
    """
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = get_settings()
        backup_manager = manager or BackupManager.from_settings(settings)
        backup_scheduler = scheduler or BackupScheduler(backup_manager, ScheduleConfig.from_settings(settings))
        app.state.backup_manager = backup_manager
        app.state.backup_scheduler = backup_scheduler
        backup_scheduler.start()
        try:
            yield
        finally:
            backup_scheduler.stop()

    app = FastAPI(title="dbvault API", lifespan=lifespan)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    app.add_exception_handler(BackupError, backup_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(backups_router, prefix=f"/{API_VERSION}")
    # Unversioned aliases for older admin tooling.
    app.include_router(health_router, include_in_schema=False)
    app.include_router(backups_router, include_in_schema=False)

    return app


app = create_app()
