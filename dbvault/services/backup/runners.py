from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import time

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from dbvault.core.errors import DumpFailedError, RestoreFailedError, SubprocessFailedError
from dbvault.services.backup.store import Artifact, ArtifactStore


logger = logging.getLogger(__name__)

DEFAULT_DUMP_TIMEOUT_S = 300.0
DEFAULT_RESTORE_TIMEOUT_S = 600.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
_STDERR_TAIL_BYTES = 4096
_READ_CHUNK = 64 * 1024


def libpq_url(connection_target: str) -> str:
    # pg_dump/psql do not understand SQLAlchemy driver suffixes like +asyncpg.
    try:
        parsed = make_url(connection_target)
    except ArgumentError:
        return connection_target
    if "+" in parsed.drivername:
        parsed = parsed.set(drivername=parsed.drivername.split("+", 1)[0])
    return parsed.render_as_string(hide_password=False)


@dataclass(frozen=True)
class ProcessOutcome:
    # Captured result of one utility invocation.
    returncode: int | None
    stdout: bytes
    stderr: bytes
    timed_out: bool
    duration_s: float

    @property
    def stderr_tail(self) -> str:
        return self.stderr[-_STDERR_TAIL_BYTES:].decode("utf-8", errors="replace").strip()


class _BoundedBuffer:
    # Keep at most `limit` bytes, dropping the oldest output first.
    def __init__(self, limit: int) -> None:
        self._limit = max(0, limit)
        self._chunks: deque[bytes] = deque()
        self._size = 0

    def append(self, chunk: bytes) -> None:
        self._chunks.append(chunk)
        self._size += len(chunk)
        while self._size > self._limit and self._chunks:
            overflow = self._size - self._limit
            head = self._chunks[0]
            if len(head) <= overflow:
                self._chunks.popleft()
                self._size -= len(head)
            else:
                self._chunks[0] = head[overflow:]
                self._size -= overflow

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)


async def _drain(stream: asyncio.StreamReader | None, buffer: _BoundedBuffer) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        buffer.append(chunk)


async def run_process(
    args: list[str],
    *,
    timeout_s: float,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
) -> ProcessOutcome:
    """Run ``args`` to completion under a hard deadline.

    stdout and stderr share one ``max_output_bytes`` limit. On timeout the
    process is killed and reaped before returning. Raises OSError when the
    executable cannot be started.
    """
    start = time.monotonic()
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout = _BoundedBuffer(max_output_bytes // 2)
    stderr = _BoundedBuffer(max_output_bytes - max_output_bytes // 2)
    readers = asyncio.gather(_drain(proc.stdout, stdout), _drain(proc.stderr, stderr), proc.wait())
    timed_out = False
    try:
        await asyncio.wait_for(readers, timeout=timeout_s)
    except asyncio.TimeoutError:
        timed_out = True
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
    except BaseException:
        # Cancellation must not leave an orphaned dump/restore behind.
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    return ProcessOutcome(
        returncode=proc.returncode,
        stdout=stdout.getvalue(),
        stderr=stderr.getvalue(),
        timed_out=timed_out,
        duration_s=time.monotonic() - start,
    )


class _UtilityRunner:
    error_cls: type[SubprocessFailedError] = SubprocessFailedError
    label = "utility"

    def __init__(self, command: str, *, timeout_s: float, max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES) -> None:
        self.command = command
        self.timeout_s = timeout_s
        self.max_output_bytes = max_output_bytes

    async def _execute(self, args: list[str]) -> ProcessOutcome:
        try:
            outcome = await run_process(args, timeout_s=self.timeout_s, max_output_bytes=self.max_output_bytes)
        except OSError as exc:
            raise self.error_cls(
                f"{self.label} could not be started: {exc.strerror or exc}",
                reason="spawn_failed",
            ) from exc
        if outcome.timed_out:
            raise self.error_cls(
                f"{self.label} timed out after {self.timeout_s:g}s",
                reason="timeout",
                returncode=outcome.returncode,
                stderr_tail=outcome.stderr_tail,
            )
        if outcome.returncode != 0:
            raise self.error_cls(
                f"{self.label} exited with status {outcome.returncode}",
                reason="exit_code",
                returncode=outcome.returncode,
                stderr_tail=outcome.stderr_tail,
            )
        return outcome


class DumpRunner(_UtilityRunner):
    """Dump the live database into a new artifact via the external dump utility."""

    error_cls = DumpFailedError
    label = "pg_dump"

    def __init__(
        self,
        command: str = "pg_dump",
        *,
        timeout_s: float = DEFAULT_DUMP_TIMEOUT_S,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        super().__init__(command, timeout_s=timeout_s, max_output_bytes=max_output_bytes)

    def build_args(self, connection_target: str, destination: Path) -> list[str]:
        return [
            self.command,
            "--no-owner",
            "--no-privileges",
            "--file",
            str(destination),
            libpq_url(connection_target),
        ]

    async def run(self, connection_target: str, store: ArtifactStore) -> Artifact:
        store.ensure_directory()
        name = store.new_artifact_name()
        temp_path = store.temp_path_for(name)
        logger.info("backup_dump_started name=%s", name)
        try:
            outcome = await self._execute(self.build_args(connection_target, temp_path))
            if not temp_path.is_file() or temp_path.stat().st_size == 0:
                raise DumpFailedError(
                    "pg_dump produced no output",
                    reason="empty_output",
                    returncode=outcome.returncode,
                    stderr_tail=outcome.stderr_tail,
                )
            # Publish atomically so the catalog never lists a half-written dump.
            os.replace(temp_path, store.root / name)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        artifact = store.stat(name)
        logger.info(
            "backup_dump_succeeded name=%s size_bytes=%s duration_s=%.2f",
            name,
            artifact.size_bytes,
            outcome.duration_s,
        )
        return artifact


class RestoreRunner(_UtilityRunner):
    """Replay an artifact into the live database. Destructive; confirmation is the caller's job."""

    error_cls = RestoreFailedError
    label = "psql"

    def __init__(
        self,
        command: str = "psql",
        *,
        timeout_s: float = DEFAULT_RESTORE_TIMEOUT_S,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        super().__init__(command, timeout_s=timeout_s, max_output_bytes=max_output_bytes)

    def build_args(self, connection_target: str, artifact_path: Path) -> list[str]:
        return [
            self.command,
            "--no-psqlrc",
            "--set",
            "ON_ERROR_STOP=1",
            "--file",
            str(artifact_path),
            libpq_url(connection_target),
        ]

    async def run(self, connection_target: str, artifact_path: Path) -> ProcessOutcome:
        logger.warning("backup_restore_started artifact=%s", artifact_path.name)
        outcome = await self._execute(self.build_args(connection_target, artifact_path))
        logger.info(
            "backup_restore_succeeded artifact=%s duration_s=%.2f",
            artifact_path.name,
            outcome.duration_s,
        )
        return outcome
