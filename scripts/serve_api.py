from __future__ import annotations

import uvicorn

from dbvault.apps.api.main import create_app
from dbvault.core.config import get_settings


def main() -> None:
    # Serve the admin API; the lifespan starts the backup scheduler.
    settings = get_settings()
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
