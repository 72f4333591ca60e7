"""
Product Data Service - Main entry point.

Starts the HTTP API over the configured entry store.

Usage:
    python -m productdata.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Logging is configured before anything else logs
    - The store is created (and its schema initialized) before the server
      accepts requests
"""

from __future__ import annotations

import logging

import json_log_formatter
import uvicorn

from .api import create_app
from .config import Settings

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Service settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # The service writes its own access log line with the trace id
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    settings = Settings()
    setup_logging(settings)
    settings.log_config()

    app = create_app(settings)
    logger.info(
        "Starting Product Data Service",
        extra={"host": settings.host, "port": settings.port},
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
