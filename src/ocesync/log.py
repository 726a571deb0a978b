"""Logging setup shared by the CLI and scheduler entrypoints."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the `ocesync` logger with console and optional file handlers.

    Args:
        level: Logging level (int constant or string name like 'DEBUG', 'INFO')
        log_file: Optional path to log file

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("ocesync")

    if isinstance(level, str):
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    else:
        logger.setLevel(level)

    # Re-running setup (e.g. from the scheduler) must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
