from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Any, BinaryIO, Iterator

from dbvault.core.config import Settings
from dbvault.core.errors import (
    BackupError,
    ConfirmationRequiredError,
    OperationInProgressError,
)
from dbvault.services.backup.retention import select_for_deletion
from dbvault.services.backup.runners import DumpRunner, RestoreRunner
from dbvault.services.backup.store import Artifact, ArtifactStore
from dbvault.services.backup.verifier import IntegrityVerifier, VerificationResult


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OperationLock:
    """Process-wide try-lock serializing create and restore.

    Contended acquisition fails immediately instead of queueing, so an
    explicit restore is never silently parked behind a long scheduled dump.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: str | None = None

    @property
    def current(self) -> str | None:
        return self._current

    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise OperationInProgressError(
                f"A backup {self._current or 'operation'} is already in progress",
                details={"operation": operation, "in_progress": self._current},
            )
        self._current = operation
        try:
            yield
        finally:
            self._current = None
            self._lock.release()


@dataclass(frozen=True)
class CreateResult:
    artifact: Artifact
    pruned: list[str] = field(default_factory=list)
    prune_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifact": self.artifact.to_dict(),
            "pruned": list(self.pruned),
            "prune_errors": list(self.prune_errors),
        }


@dataclass(frozen=True)
class RestoreResult:
    name: str
    started_at: datetime
    completed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_s": round((self.completed_at - self.started_at).total_seconds(), 3),
            "message": "Database restored successfully",
        }


@dataclass(frozen=True)
class BackupListing:
    artifacts: list[Artifact]
    max_retained: int
    backup_dir: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": len(self.artifacts),
            "backups": [artifact.to_dict() for artifact in self.artifacts],
            "max_retained": self.max_retained,
            "backup_dir": self.backup_dir,
        }


@dataclass(frozen=True)
class BackupStats:
    total_backups: int
    total_size_bytes: int
    oldest: Artifact | None
    newest: Artifact | None
    max_retained: int
    backup_dir: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_backups": self.total_backups,
            "total_size_bytes": self.total_size_bytes,
            "total_size_mb": f"{self.total_size_bytes / 1024 / 1024:.2f}",
            "oldest": self.oldest.to_dict() if self.oldest else None,
            "newest": self.newest.to_dict() if self.newest else None,
            "max_retained": self.max_retained,
            "backup_dir": self.backup_dir,
        }


class BackupManager:
    """Orchestrates the backup lifecycle around one ArtifactStore.

    create/restore hold the OperationLock for their whole duration; the
    read-only operations and manual deletes do not take it, so they may
    observe the directory mid-mutation (and a delete can race an in-flight
    restore reading the same file).
    """

    def __init__(
        self,
        *,
        store: ArtifactStore,
        connection_target: str,
        max_backups: int,
        dump_runner: DumpRunner | None = None,
        restore_runner: RestoreRunner | None = None,
        verifier: IntegrityVerifier | None = None,
        lock: OperationLock | None = None,
    ) -> None:
        if max_backups < 1:
            raise ValueError("max_backups must be >= 1")
        self.store = store
        self.connection_target = connection_target
        self.max_backups = max_backups
        self.dump_runner = dump_runner or DumpRunner()
        self.restore_runner = restore_runner or RestoreRunner()
        self.verifier = verifier or IntegrityVerifier()
        self.lock = lock or OperationLock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BackupManager":
        # Wire the manager from process configuration; callers own its lifetime.
        store = ArtifactStore(settings.backup_dir, prefix=settings.backup_prefix, suffix=settings.backup_suffix)
        store.ensure_directory()
        return cls(
            store=store,
            connection_target=settings.database_url,
            max_backups=settings.max_backups,
            dump_runner=DumpRunner(
                settings.backup_dump_command,
                timeout_s=settings.backup_dump_timeout_s,
                max_output_bytes=settings.backup_max_output_bytes,
            ),
            restore_runner=RestoreRunner(
                settings.backup_restore_command,
                timeout_s=settings.backup_restore_timeout_s,
                max_output_bytes=settings.backup_max_output_bytes,
            ),
        )

    @property
    def busy(self) -> bool:
        return self.lock.locked()

    @property
    def current_operation(self) -> str | None:
        return self.lock.current

    async def create(self) -> CreateResult:
        with self.lock.hold("create"):
            try:
                artifact = await self.dump_runner.run(self.connection_target, self.store)
            except BackupError as exc:
                logger.error("backup_create_failed code=%s message=%s details=%s", exc.code, exc.message, exc.details)
                raise
            pruned, prune_errors = self._apply_retention(keep=artifact.name, max_count=self.max_backups)
        return CreateResult(artifact=artifact, pruned=pruned, prune_errors=prune_errors)

    def _apply_retention(self, *, keep: str | None, max_count: int) -> tuple[list[str], list[str]]:
        # Individual delete failures are logged and never fail the create.
        pruned: list[str] = []
        errors: list[str] = []
        try:
            artifacts = self.store.list()
        except BackupError as exc:
            logger.warning("backup_retention_list_failed message=%s", exc.message)
            return pruned, [exc.message]
        for stale in select_for_deletion(artifacts, max_count):
            if stale.name == keep:
                continue
            try:
                self.store.delete(stale.name)
            except BackupError as exc:
                logger.warning("backup_retention_delete_failed name=%s message=%s", stale.name, exc.message)
                errors.append(stale.name)
                continue
            pruned.append(stale.name)
        if pruned:
            logger.info("backup_retention_pruned count=%s max_backups=%s", len(pruned), max_count)
        return pruned, errors

    def prune(self, *, max_count: int | None = None, dry_run: bool = False) -> list[str]:
        # Operator-driven retention pass; serialized with create/restore so it never races a dump.
        limit = self.max_backups if max_count is None else max_count
        with self.lock.hold("prune"):
            if dry_run:
                return [artifact.name for artifact in select_for_deletion(self.store.list(), limit)]
            pruned, _errors = self._apply_retention(keep=None, max_count=limit)
        return pruned

    async def restore(self, name: str, confirmed: Any) -> RestoreResult:
        # Only the boolean True confirms; "true", 1 and friends are rejected.
        if confirmed is not True:
            raise ConfirmationRequiredError(
                "Restore requires explicit confirmation",
                details={
                    "warning": "This operation will overwrite the current database",
                    "example": {"confirm": True},
                },
            )
        path = self.store.resolve_path(name)
        with self.lock.hold("restore"):
            started_at = _utc_now()
            try:
                await self.restore_runner.run(self.connection_target, path)
            except BackupError as exc:
                # No rollback: the database may be partially restored and needs operator follow-up.
                logger.error(
                    "backup_restore_failed name=%s code=%s message=%s details=%s",
                    name,
                    exc.code,
                    exc.message,
                    exc.details,
                )
                raise
        return RestoreResult(name=name, started_at=started_at, completed_at=_utc_now())

    def list(self) -> BackupListing:
        return BackupListing(
            artifacts=self.store.list(),
            max_retained=self.max_backups,
            backup_dir=str(self.store.root),
        )

    def stats(self) -> BackupStats:
        artifacts = self.store.list()
        return BackupStats(
            total_backups=len(artifacts),
            total_size_bytes=sum(artifact.size_bytes for artifact in artifacts),
            oldest=artifacts[-1] if artifacts else None,
            newest=artifacts[0] if artifacts else None,
            max_retained=self.max_backups,
            backup_dir=str(self.store.root),
        )

    def verify(self, name: str) -> VerificationResult:
        result = self.verifier.verify(self.store.resolve_path(name))
        if not result.valid:
            logger.warning("backup_verify_invalid name=%s reasons=%s", name, result.reasons)
        return result

    def delete(self, name: str) -> None:
        if self.lock.current == "restore":
            logger.warning("backup_delete_during_restore name=%s", name)
        self.store.delete(name)

    def open(self, name: str) -> BinaryIO:
        return self.store.open(name)
