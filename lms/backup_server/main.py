"""
Main entry point for the LMS backup server.

Starts the HTTP server that the external scheduler calls to run the daily
backup job.

Usage:
    lms-backup-server
    python -m lms.backup_server.main

Environment variables:
    See config.py for all configuration options; api/config.py for the
    shared secrets (CRON_SECRET, ADMIN_API_SECRET) and bind address.
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api.app import create_app
from .api.config import Settings
from .config import ObservabilityConfig

logger = logging.getLogger(__name__)


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    setup_logging(ObservabilityConfig.from_env())

    try:
        settings = Settings()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info("Starting backup server", extra={"host": settings.host, "port": settings.port})
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
