"""
Logging configuration for the poller and the CLI tools.

Console output plus a size-rotated file per logger under ``config.logs_dir``.
Module loggers (``logging.getLogger(__name__)``) inherit the handlers attached
to their package logger, so call setup_logging() once per top-level package.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from .config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("urllib3", "requests")


def setup_logging(
    logger_name: str = "fritzlog",
    level: Optional[str] = None,
    logs_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure and return a package logger.

    Args:
        logger_name: Package whose loggers should be captured
        level: Level name, config.log_level when omitted
        logs_dir: Directory for the rotated log file, config.logs_dir when omitted

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    level = (level or config.log_level).upper()
    logger.setLevel(level)

    # Already configured: only the level changes
    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    directory = Path(logs_dir) if logs_dir is not None else config.logs_dir
    directory.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        directory / f"{logger_name}.log",
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
