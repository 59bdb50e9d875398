from __future__ import annotations

import argparse
import json
import sys

from dbvault.core.config import get_settings
from dbvault.core.errors import BackupError
from dbvault.core.logging import configure_logging
from dbvault.services.backup import BackupManager


def main() -> None:
    # Heuristic structure check; exits non-zero for invalid or unreadable backups.
    parser = argparse.ArgumentParser(description="Verify a backup's structure")
    parser.add_argument("name")
    args = parser.parse_args()
    configure_logging()

    try:
        manager = BackupManager.from_settings(get_settings())
        result = manager.verify(args.name)
    except BackupError as exc:
        print(f"error={exc.code}")
        print(f"message={exc.message}")
        sys.exit(1)
    print(json.dumps({"name": args.name, **result.to_dict()}, indent=2))
    if not result.valid:
        sys.exit(1)


if __name__ == "__main__":
    main()
