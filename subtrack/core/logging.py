from __future__ import annotations

import logging
from logging import Logger

from .config import get_settings


def configure_logging() -> Logger:
    """
    Configure root logger for the reminder runner.

    Uses a simple format suitable for both local development and production logs.
    """

    settings = get_settings()

    log_level = logging.DEBUG if settings.is_debug else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    # APScheduler is chatty at DEBUG; keep its job bookkeeping out of our logs
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logger = logging.getLogger("subtrack")
    logger.setLevel(log_level)
    return logger
