"""Shared configuration for the pipeline engine.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

from __future__ import annotations

import logging
import os

# Extraction defaults
DEFAULT_TIMEOUT_MS = float(os.getenv("ETL_DEFAULT_TIMEOUT_MS", "30000"))
DEFAULT_TOTAL_ITEMS_LIMIT = int(os.getenv("ETL_DEFAULT_TOTAL_ITEMS_LIMIT", "1000000"))

# Error handling defaults
DEFAULT_MAX_RETRIES = int(os.getenv("ETL_DEFAULT_MAX_RETRIES", "0"))
DEFAULT_RETRY_INTERVAL_MS = float(os.getenv("ETL_DEFAULT_RETRY_INTERVAL_MS", "1000"))

# OAuth2 token endpoint timeout
OAUTH_TIMEOUT_SECONDS = float(os.getenv("ETL_OAUTH_TIMEOUT_SECONDS", "30"))

# Fernet key for encrypted vault files
VAULT_KEY_ENV = "ETL_VAULT_KEY"

LOG_LEVEL = os.getenv("ETL_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Attach a basic handler to the root logger.

    Intended for scripts and services embedding the engine; the library
    itself never configures logging on import.
    """
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
