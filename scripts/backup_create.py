from __future__ import annotations

import argparse
import asyncio
import sys

from dbvault.core.config import get_settings
from dbvault.core.errors import BackupError
from dbvault.core.logging import configure_logging
from dbvault.services.backup import BackupManager


async def _run_backup(output: str | None) -> int:
    # Execute a one-off backup from the CLI for operator workflows.
    settings = get_settings()
    if output:
        settings = settings.model_copy(update={"backup_dir": output})
    try:
        manager = BackupManager.from_settings(settings)
        result = await manager.create()
    except BackupError as exc:
        print(f"error={exc.code}")
        print(f"message={exc.message}")
        stderr_tail = exc.details.get("stderr_tail")
        if stderr_tail:
            print(f"stderr_tail={stderr_tail}")
        return 1
    print(f"backup={result.artifact.name}")
    print(f"size_bytes={result.artifact.size_bytes}")
    print(f"pruned={','.join(result.pruned)}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a database backup")
    parser.add_argument("--output", default=None, help="Backup directory (defaults to BACKUP_DIR)")
    args = parser.parse_args()
    configure_logging()
    sys.exit(asyncio.run(_run_backup(args.output)))


if __name__ == "__main__":
    main()
