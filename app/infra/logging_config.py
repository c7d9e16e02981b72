"""Process-wide logging setup for the API and background tasks."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from app.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ROOT_LOGGER_NAME = "app"

_configured = False


class LoggingConfig:
    """Configure the root logger once; later instantiations are no-ops."""

    def __init__(self, level: Optional[str] = None) -> None:
        global _configured
        if _configured:
            return
        settings = get_settings()
        resolved = (level or settings.log_level or "INFO").upper()
        logging.basicConfig(
            level=resolved,
            format=LOG_FORMAT,
            stream=sys.stdout,
        )
        # httpx logs every request at INFO, including query strings with tokens
        logging.getLogger("httpx").setLevel(logging.WARNING)
        _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the application namespace."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
