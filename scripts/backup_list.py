from __future__ import annotations

import argparse
import json
import sys

from dbvault.core.config import get_settings
from dbvault.core.errors import BackupError
from dbvault.core.logging import configure_logging
from dbvault.services.backup import BackupManager


def main() -> None:
    parser = argparse.ArgumentParser(description="List database backups")
    parser.add_argument("--stats", action="store_true", help="Print aggregate statistics instead")
    args = parser.parse_args()
    configure_logging()

    try:
        manager = BackupManager.from_settings(get_settings())
        payload = manager.stats().to_dict() if args.stats else manager.list().to_dict()
    except BackupError as exc:
        print(f"error={exc.code}")
        print(f"message={exc.message}")
        sys.exit(1)
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
