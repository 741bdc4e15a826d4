"""Logging setup for processes embedding the booking core."""

import logging
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the ``slotbook`` logger hierarchy.

    Only the package logger is touched so host applications keep control of
    the root logger and their own handlers.
    """
    resolved = (level or settings.log_level).upper()
    package_logger = logging.getLogger("slotbook")
    package_logger.setLevel(resolved)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    # Stripe's SDK logs every request at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)
