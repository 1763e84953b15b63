"""
Logging setup for the ingestion engine.

Modules log through ``logging.getLogger(__name__)``; this installs a single
handler on the package logger so applications and scripts get consistent output.
"""

import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the ``objectgraph`` logger; safe to call more than once."""
    if level is None:
        from .config.settings import get_settings
        level = get_settings().log_level

    logger = logging.getLogger("objectgraph")
    logger.setLevel(level.upper())

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
