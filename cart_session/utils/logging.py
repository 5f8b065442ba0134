"""
Logging setup for the cart session service.

Usage:
    from cart_session.utils.logging import get_logger
    logger = get_logger(__name__)
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _get_log_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _configure_root_logger() -> None:
    root = logging.getLogger()

    # leave uvicorn/celery handlers alone if they got there first
    if root.handlers:
        return

    root.setLevel(_get_log_level())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """Get or create a logger with the given name (typically __name__)."""
    return logging.getLogger(name)


def short_key(cart_key: str | None) -> str:
    """
    Shorten a cart key for log lines.

    Cart keys are bearer-equivalent identifiers, so only a prefix is logged.
    """
    if not cart_key:
        return "N/A"
    safe = str(cart_key).replace("\n", "\\n").replace("\r", "\\r")
    return safe[:10] + "..." if len(safe) > 10 else safe


__all__ = ["LOG_FORMAT", "get_logger", "short_key"]
