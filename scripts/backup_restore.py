from __future__ import annotations

import argparse
import asyncio
import sys

from dbvault.core.config import get_settings
from dbvault.core.errors import BackupError
from dbvault.core.logging import configure_logging
from dbvault.services.backup import BackupManager


async def _run_restore(name: str, target_db_url: str | None, confirmed: bool) -> int:
    settings = get_settings()
    if target_db_url:
        settings = settings.model_copy(update={"database_url": target_db_url})
    try:
        manager = BackupManager.from_settings(settings)
        result = await manager.restore(name, confirmed)
    except BackupError as exc:
        print(f"error={exc.code}")
        print(f"message={exc.message}")
        stderr_tail = exc.details.get("stderr_tail")
        if stderr_tail:
            print(f"stderr_tail={stderr_tail}")
        return 1
    summary = result.to_dict()
    print(f"restored={summary['name']}")
    print(f"started_at={summary['started_at']}")
    print(f"completed_at={summary['completed_at']}")
    print(f"duration_s={summary['duration_s']}")
    return 0


def main() -> None:
    # Restore overwrites the target database; --confirm is mandatory.
    parser = argparse.ArgumentParser(description="Restore the database from a backup")
    parser.add_argument("name", help="Backup file name as shown by backup_list.py")
    parser.add_argument("--target-db-url", default=None)
    parser.add_argument("--confirm", action="store_true", help="Acknowledge that the database will be overwritten")
    args = parser.parse_args()
    configure_logging()
    sys.exit(asyncio.run(_run_restore(args.name, args.target_db_url, args.confirm)))


if __name__ == "__main__":
    main()
