from __future__ import annotations

import argparse
import sys

from dbvault.core.config import get_settings
from dbvault.core.errors import BackupError
from dbvault.core.logging import configure_logging
from dbvault.services.backup import BackupManager


def main() -> None:
    # Prune backups beyond the retention count without taking a new dump.
    parser = argparse.ArgumentParser(description="Prune backups beyond retention")
    parser.add_argument("--max-backups", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()
    configure_logging()

    try:
        manager = BackupManager.from_settings(get_settings())
        pruned = manager.prune(max_count=args.max_backups, dry_run=args.dry_run)
    except (BackupError, ValueError) as exc:
        print(f"error={getattr(exc, 'code', 'INVALID_ARGUMENT')}")
        print(f"message={exc}")
        sys.exit(1)
    if args.dry_run:
        print("dry_run=true")
    print(f"pruned_backups={len(pruned)}")
    for name in pruned:
        print(f"pruned={name}")


if __name__ == "__main__":
    main()
