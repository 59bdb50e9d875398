from __future__ import annotations

from dbvault.services.backup.manager import (
    BackupListing,
    BackupManager,
    BackupStats,
    CreateResult,
    OperationLock,
    RestoreResult,
)
from dbvault.services.backup.retention import select_for_deletion
from dbvault.services.backup.runners import DumpRunner, RestoreRunner, libpq_url
from dbvault.services.backup.schedule import CronSchedule, ScheduleConfig
from dbvault.services.backup.scheduler import BackupScheduler
from dbvault.services.backup.store import Artifact, ArtifactStore
from dbvault.services.backup.verifier import IntegrityVerifier, VerificationResult


__all__ = [
    "Artifact",
    "ArtifactStore",
    "BackupListing",
    "BackupManager",
    "BackupScheduler",
    "BackupStats",
    "CreateResult",
    "CronSchedule",
    "DumpRunner",
    "IntegrityVerifier",
    "OperationLock",
    "RestoreResult",
    "RestoreRunner",
    "ScheduleConfig",
    "VerificationResult",
    "libpq_url",
    "select_for_deletion",
]
