from __future__ import annotations


class DbVaultError(Exception):
    """Base error for dbvault."""


class BackupError(DbVaultError):
    """Backup lifecycle failure with a stable error code."""

    code = "BACKUP_ERROR"

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class BackupIOError(BackupError):
    """Backup directory or artifact file could not be accessed."""

    code = "BACKUP_IO_ERROR"


class InvalidArtifactNameError(BackupError):
    """Artifact name is malformed or would escape the backup directory."""

    code = "INVALID_NAME"


class ArtifactNotFoundError(BackupError):
    """Artifact does not exist in the backup directory."""

    code = "NOT_FOUND"


class SubprocessFailedError(BackupError):
    """External dump/restore utility failed, timed out or produced nothing."""

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        returncode: int | None = None,
        stderr_tail: str = "",
    ) -> None:
        super().__init__(
            message,
            details={"reason": reason, "returncode": returncode, "stderr_tail": stderr_tail},
        )
        self.reason = reason
        self.returncode = returncode
        self.stderr_tail = stderr_tail


class DumpFailedError(SubprocessFailedError):
    """Database dump did not produce a complete artifact."""

    code = "DUMP_FAILED"


class RestoreFailedError(SubprocessFailedError):
    """Database restore failed; the live database may be partially restored."""

    code = "RESTORE_FAILED"


class ConfirmationRequiredError(BackupError):
    """Destructive restore attempted without an explicit boolean confirmation."""

    code = "CONFIRMATION_REQUIRED"


class OperationInProgressError(BackupError):
    """Another create/restore currently holds the operation lock."""

    code = "OPERATION_IN_PROGRESS"
