from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dbvault.core.errors import BackupError, OperationInProgressError
from dbvault.services.backup.manager import BackupManager, CreateResult
from dbvault.services.backup.schedule import ScheduleConfig


logger = logging.getLogger(__name__)

JOB_ID = "scheduled-backup"


class BackupScheduler:
    """Runs BackupManager.create on a cron schedule.

    Constructed once at startup and injected where needed; ``start()`` must be
    called from a running event loop (the API lifespan does this) and
    ``stop()`` at shutdown.
    """

    def __init__(
        self,
        manager: BackupManager,
        config: ScheduleConfig,
        *,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.manager = manager
        self.config = config
        self._scheduler = scheduler
        self._job: Job | None = None
        self._trigger = config.cron.to_trigger(config.timezone)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self) -> None:
        if not self.config.enabled:
            logger.info("backup_scheduler_disabled reason=BACKUP_ENABLED=false")
            return
        if self._job is not None:
            return
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self.config.timezone)
        self._job = self._scheduler.add_job(
            self.run_scheduled_backup,
            self._trigger,
            id=JOB_ID,
            name="Scheduled database backup",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            "backup_scheduler_started pattern=%r next_run_at=%s",
            self.config.cron.expression,
            self.next_run_at(),
        )

    def stop(self) -> None:
        # Safe to call repeatedly, and before start().
        if self._job is None:
            return
        scheduler = self._scheduler
        self._job = None
        if scheduler is not None:
            if scheduler.get_job(JOB_ID) is not None:
                scheduler.remove_job(JOB_ID)
            if scheduler.running:
                scheduler.shutdown(wait=False)
        logger.info("backup_scheduler_stopped")

    async def run_scheduled_backup(self) -> CreateResult | None:
        # Failures are logged and swallowed so the next firing is unaffected; no retry.
        logger.info("backup_scheduled_started")
        try:
            result = await self.manager.create()
        except OperationInProgressError as exc:
            logger.warning(
                "backup_scheduled_skipped reason=operation_in_progress in_progress=%s",
                exc.details.get("in_progress"),
            )
            return None
        except BackupError as exc:
            logger.error(
                "backup_scheduled_failed code=%s message=%s details=%s",
                exc.code,
                exc.message,
                exc.details,
            )
            return None
        except Exception:
            logger.exception("backup_scheduled_crashed")
            return None
        logger.info(
            "backup_scheduled_completed name=%s size_mb=%s pruned=%s",
            result.artifact.name,
            result.artifact.size_mb,
            len(result.pruned),
        )
        return result

    def next_run_at(self) -> datetime | None:
        if self._job is None:
            return None
        next_run = getattr(self._job, "next_run_time", None)
        if next_run is not None:
            return next_run
        return self._trigger.get_next_fire_time(None, datetime.now(self._trigger.timezone))

    def describe(self) -> str:
        return str(self._trigger)

    def status(self) -> dict[str, Any]:
        next_run = self.next_run_at()
        return {
            "enabled": self.config.enabled,
            "running": self.running,
            "backup_in_progress": self.manager.busy,
            "current_operation": self.manager.current_operation,
            "schedule": self.describe(),
            "pattern": self.config.cron.expression,
            "timezone": self.config.timezone,
            "next_run_at": next_run.isoformat() if next_run else None,
            "max_backups": self.config.max_backups,
        }
