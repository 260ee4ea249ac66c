"""
Logging setup for applications embedding ttsbridge.

All library loggers live under "ttsbridge" (ttsbridge.markup,
ttsbridge.tts_engines, ...). The library itself never installs handlers;
call setup_logging() from the application.
"""

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "ttsbridge"

formatter = logging.Formatter(
    "[%(asctime)s] [%(levelname)-8s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)


def setup_logging(level: Optional[str] = None, log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Attach console (and optionally rotating file) handlers to the ttsbridge logger.

    Args:
        level: Level name; defaults to the LOG_LEVEL environment variable, then INFO
        log_file: File rotated at midnight, 7 days kept

    Returns:
        The "ttsbridge" logger
    """
    log_level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, log_level_name, logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(log_level)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            str(log_path),
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def update_log_level(level_name: str):
    """Update log level for the ttsbridge loggers dynamically."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.getLogger(LOGGER_NAME).setLevel(level)
