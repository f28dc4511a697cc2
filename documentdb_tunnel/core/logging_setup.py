"""Logging setup for processes embedding the connector."""

import logging
import sys
from typing import Optional

from documentdb_tunnel.core.config import settings
from documentdb_tunnel.core.redaction import SecretRedactingFilter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the package logger with a stream handler and secret redaction.

    Args:
        level: Log level name (defaults to settings.log_level)

    Returns:
        The configured ``documentdb_tunnel`` logger
    """
    logger = logging.getLogger("documentdb_tunnel")
    logger.setLevel((level or settings.log_level).upper())
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SecretRedactingFilter())
    logger.addHandler(handler)
    return logger
