from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
from typing import Any, BinaryIO

from dbvault.core.errors import ArtifactNotFoundError, BackupIOError, InvalidArtifactNameError


logger = logging.getLogger(__name__)

# Filesystem-safe UTC timestamp; lexicographic order equals chronological order.
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%SZ"
TEMP_SUFFIX = ".partial"


@dataclass(frozen=True)
class Artifact:
    # Describe a completed backup file; timestamps come from stat, not the name.
    name: str
    size_bytes: int
    created_at: datetime
    modified_at: datetime
    encoded_at: datetime | None = None

    @property
    def size_mb(self) -> str:
        return f"{self.size_bytes / 1024 / 1024:.2f}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size_bytes": self.size_bytes,
            "size_mb": self.size_mb,
            "created_at": self.created_at.isoformat(),
            "modified_at": self.modified_at.isoformat(),
            "encoded_at": self.encoded_at.isoformat() if self.encoded_at else None,
        }


def _from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class ArtifactStore:
    """Filesystem catalog of backup artifacts under a single flat directory.

    Only regular files named ``<prefix><timestamp><suffix>`` are artifacts;
    everything else in the directory, including in-progress dumps, is ignored.
    """

    def __init__(self, root: Path | str, *, prefix: str = "db_backup_", suffix: str = ".sql") -> None:
        self.root = Path(root).expanduser().absolute()
        self.prefix = prefix
        self.suffix = suffix

    def ensure_directory(self) -> Path:
        # Create the backup directory (and parents) on first use.
        if self.root.is_dir():
            return self.root
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackupIOError(
                f"Cannot create backup directory {self.root}: {exc.strerror or exc}",
                details={"directory": str(self.root)},
            ) from exc
        logger.info("backup_directory_created path=%s", self.root)
        return self.root

    def is_artifact_name(self, name: str) -> bool:
        return (
            name.startswith(self.prefix)
            and name.endswith(self.suffix)
            and len(name) > len(self.prefix) + len(self.suffix)
        )

    def new_artifact_name(self, now: datetime | None = None) -> str:
        # Encode the creation time; same-second names collide and the later dump wins.
        moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        return f"{self.prefix}{moment.strftime(TIMESTAMP_FORMAT)}{self.suffix}"

    def decode_timestamp(self, name: str) -> datetime | None:
        # Informational only; externally renamed files may not decode.
        if not self.is_artifact_name(name):
            return None
        encoded = name[len(self.prefix) : len(name) - len(self.suffix)]
        try:
            return datetime.strptime(encoded, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            return None

    def temp_path_for(self, name: str) -> Path:
        # Hidden temp names never match the prefix, so list() never sees them.
        return self.root / f".{name}{TEMP_SUFFIX}"

    def list(self) -> list[Artifact]:
        # Recompute from the filesystem on every call; newest first by name.
        if not self.root.is_dir():
            return []
        try:
            entries = [
                entry.name
                for entry in os.scandir(self.root)
                if self.is_artifact_name(entry.name) and entry.is_file(follow_symlinks=False)
            ]
        except OSError as exc:
            raise BackupIOError(
                f"Cannot list backup directory {self.root}: {exc.strerror or exc}",
                details={"directory": str(self.root)},
            ) from exc
        artifacts: list[Artifact] = []
        for name in sorted(entries, reverse=True):
            try:
                artifacts.append(self._stat_path(name, self.root / name))
            except FileNotFoundError:
                # Pruned or deleted between scandir and stat.
                continue
        return artifacts

    def resolve_path(self, name: str, *, must_exist: bool = True) -> Path:
        """Return the absolute path of ``name`` strictly inside the store root.

        Raises InvalidArtifactNameError for anything that could address a file
        outside the root or outside the naming scheme, and ArtifactNotFoundError
        when ``must_exist`` is set and the file is absent.
        """
        if not isinstance(name, str) or not name:
            raise InvalidArtifactNameError("Backup name is required")
        if "\x00" in name or "/" in name or "\\" in name or name in {".", ".."}:
            raise InvalidArtifactNameError("Invalid backup filename", details={"name": name})
        if os.path.isabs(name) or not self.is_artifact_name(name):
            raise InvalidArtifactNameError("Invalid backup filename", details={"name": name})
        root = self.root.resolve()
        candidate = (root / name).resolve()
        if candidate.parent != root:
            raise InvalidArtifactNameError("Invalid backup filename", details={"name": name})
        if must_exist and not candidate.is_file():
            raise ArtifactNotFoundError(f"Backup file not found: {name}", details={"name": name})
        return candidate

    def stat(self, name: str) -> Artifact:
        path = self.resolve_path(name)
        try:
            return self._stat_path(name, path)
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"Backup file not found: {name}", details={"name": name}) from exc

    def open(self, name: str) -> BinaryIO:
        path = self.resolve_path(name)
        try:
            return path.open("rb")
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"Backup file not found: {name}", details={"name": name}) from exc
        except OSError as exc:
            raise BackupIOError(f"Cannot read backup {name}: {exc.strerror or exc}") from exc

    def delete(self, name: str) -> None:
        path = self.resolve_path(name)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"Backup file not found: {name}", details={"name": name}) from exc
        except OSError as exc:
            raise BackupIOError(f"Cannot delete backup {name}: {exc.strerror or exc}") from exc
        logger.info("backup_deleted name=%s", name)

    def _stat_path(self, name: str, path: Path) -> Artifact:
        stats = path.stat()
        # st_birthtime exists on macOS/BSD (and Windows on 3.12+); fall back to ctime elsewhere.
        created = getattr(stats, "st_birthtime", None) or stats.st_ctime
        return Artifact(
            name=name,
            size_bytes=stats.st_size,
            created_at=_from_timestamp(created),
            modified_at=_from_timestamp(stats.st_mtime),
            encoded_at=self.decode_timestamp(name),
        )
