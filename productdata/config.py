"""
Configuration for the Product Data Service.

Uses pydantic-settings for environment variable loading. Every setting is
read from ``PRODUCT_DATA_<NAME>`` (e.g. ``PRODUCT_DATA_RESPONSE_LIMIT``).

Invariants:
    - All settings have sensible defaults for local development
    - Invalid values fail at load time, never at first use
    - Secrets are never logged

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Add new secret-bearing fields to SECRET_FIELDS
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Field names whose values are redacted by log_config()
SECRET_FIELDS: frozenset[str] = frozenset()


class Settings(BaseSettings):
    """Service configuration loaded from environment."""

    service_name: str = Field(default="product-data-service", description="Service name for logs")

    # HTTP server
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")

    # Entry store
    store_backend: Literal["sqlite", "memory"] = Field(
        default="sqlite", description="Entry store implementation"
    )
    database_path: str = Field(default="product_data.db", description="SQLite database file")
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0, description="SQLite busy timeout")
    sqlite_wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")

    # Limits
    response_limit: int = Field(
        default=10000, ge=1, description="Maximum entries returned by one retrieve"
    )
    max_ops_per_call: int = Field(
        default=1000, ge=1, description="Maximum upserts sent to the store in one call"
    )
    max_body_bytes: int = Field(
        default=16 * 1024 * 1024, ge=1, description="Maximum request body size"
    )

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Root log level"
    )
    log_format: Literal["json", "text"] = Field(default="json", description="Log output format")
    metrics_enabled: bool = Field(default=True, description="Collect in-process metrics")

    model_config = {"env_prefix": "PRODUCT_DATA_"}

    def log_config(self) -> None:
        """Log the effective configuration with secrets redacted."""
        values = {
            name: ("***" if name in SECRET_FIELDS else value)
            for name, value in self.model_dump().items()
        }
        logger.info("Service configuration", extra={"config": values})
