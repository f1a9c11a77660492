"""Logging configuration for Scrobble Enricher."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Optional

import coloredlogs

if TYPE_CHECKING:
    from ..config.settings import LoggingConfig

LOGGER_NAME = "scrobble_enricher"

# Third-party loggers that are chatty at DEBUG
NOISY_LOGGERS = ["urllib3", "apscheduler"]

# Scheduled loads run on APScheduler worker threads
FILE_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logger(
    config: 'LoggingConfig',
    level: Optional[str] = None,
    console: bool = True
) -> logging.Logger:
    """Configure the application logger from the logging settings.

    Module loggers such as ``scrobble_enricher.config.database`` propagate
    to the logger configured here.

    Args:
        config: Logging settings (file path, level, rotation)
        level: Override of the configured level, e.g. DEBUG for --verbose
        console: Whether to also log to stdout

    Returns:
        The application logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel((level or config.level).upper())

    # Reconfiguring (CLI command after service start, tests) must not leak files
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if config.path:
        config.path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.path,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(coloredlogs.ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt='%H:%M:%S'))
        logger.addHandler(console_handler)

    return logger
