"""Logging setup shared by the CLI and the mount process."""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``blob_mount`` logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to the
            BLOB_MOUNT_LOG_LEVEL env var, then INFO.

    Returns:
        The configured package logger.
    """
    if log_level is None:
        log_level = os.getenv("BLOB_MOUNT_LOG_LEVEL", "INFO")
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger("blob_mount")
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    return logger
