"""Rotating logger setup for the firmware update service."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union


def setup_logger(
    name: str = "fwupdater",
    log_file: str = "./logs/fwupdater.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 3,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Setup the service logger: rotating file plus console, ISO 8601 timestamps.

    Child loggers ("fwupdater.item_updater", "fwupdater.activation", ...)
    propagate to this one, so configuring it once covers the package.

    Args:
        name: Logger name
        log_file: Path to log file (parent directory is created)
        max_bytes: Max size before rotation
        backup_count: Number of rotated files to keep
        level: Level as int or name ("DEBUG", "INFO", ...)

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers when the app is started twice in one process
    if logger.handlers:
        return logger

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    console_handler = logging.StreamHandler()

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    for handler in (file_handler, console_handler):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
