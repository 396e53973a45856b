"""Logging setup shared by the API process and the CLI."""

import logging

from backend.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")


def setup_logging(level: str | None = None):
    """Configure the root logger once; repeated calls only adjust the level."""
    level_name = (level or settings.log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level_name, format=LOG_FORMAT)
    root.setLevel(level_name)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
