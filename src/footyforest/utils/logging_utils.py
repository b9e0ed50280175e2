"""
Logging utilities for FootyForest.

Provides a simple, consistent logger configuration so that every module can log
to stdout with a formatted timestamp and log level.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger with the given name.

    If the root logger has no handlers configured yet, this function also
    configures a basic StreamHandler.

    Parameters
    ----------
    name : str | None
        Logger name. If None, the package logger "footyforest" is returned.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    logger_name = name if name is not None else "footyforest"
    logger = logging.getLogger(logger_name)

    if not logging.getLogger().handlers:
        # Configure root logger once
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    return logger


def set_log_level(level: str) -> None:
    """Set the level of the footyforest loggers (e.g. from a CLI flag)."""
    logging.getLogger("footyforest").setLevel(level.upper())
