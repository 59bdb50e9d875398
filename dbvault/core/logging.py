from __future__ import annotations

import logging

from dbvault.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Configure the root logger once; repeated calls only adjust the level.
    resolved = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    root.setLevel(resolved)
    # APScheduler logs every job execution at INFO; keep it quieter than our own events.
    logging.getLogger("apscheduler").setLevel(max(logging.WARNING, root.level))
