#!/usr/bin/env python3
"""
Main entrypoint: start the HTTP API.
Run with: python run.py  (or the installed `rollday` script)
Bootstrap the local database only: python -m database
"""
from __future__ import annotations

import logging
import sys

# Ensure app loggers (rollday.api, task_service, sync_adapter) emit to the same stream as uvicorn
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)

from config import load as load_config

logger = logging.getLogger("rollday")


def main() -> None:
    import uvicorn

    config = load_config()
    if config.storage_backend == "local":
        from database import init_database

        db_path = init_database()
        logger.info("Local storage at %s", db_path)
    else:
        logger.info("Remote storage at %s", config.remote_url)
    uvicorn.run(
        "web_app:app",
        host="0.0.0.0",
        port=config.web_ui_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
