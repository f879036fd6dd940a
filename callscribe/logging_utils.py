"""Logging setup from LOG_LEVEL / LOG_FILE."""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO", log_file: str = "") -> logging.Logger:
    """
    Configure the callscribe package logger once. Console always; rotating file when log_file is set.
    Calling again only updates the level (handlers are not duplicated).
    """
    logger = logging.getLogger("callscribe")
    logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))

    if not logger.handlers:
        fmt = logging.Formatter(_FORMAT, datefmt=_DATEFMT)
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        logger.addHandler(console)
        if log_file:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3)
            handler.setFormatter(fmt)
            logger.addHandler(handler)

    return logger
