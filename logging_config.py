"""
Logging configuration.

Console logging always; a rotating log file when LOG_FILE is set.
"""

import os
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Max log file size (10MB)
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5


def setup_logging(level_name: str | None = None, log_file: str | None = None) -> logging.Logger:
    """
    Configure the root logger once for the whole service.

    Args:
        level_name: Logging level name, defaults to LOG_LEVEL or INFO
        log_file: Optional path for a rotating log file, defaults to LOG_FILE

    Returns:
        The root logger
    """
    level_name = (level_name or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = log_file or os.getenv("LOG_FILE")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on reload
    root_logger.handlers = []

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).info("Logging configured at %s", level_name)
    return root_logger
