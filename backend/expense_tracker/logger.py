"""
Logging setup for the Expense Tracker backend.

Console logging is always on; file logging is enabled with ENABLE_FILE_LOGGING.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from expense_tracker.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOGGER_NAME = "expense_tracker"


def setup_logging(level: Optional[str] = None, enable_file: Optional[bool] = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Logging level name. Defaults to settings.LOG_LEVEL.
        enable_file: Write to a dated file in settings.LOG_DIR. Defaults to
            settings.ENABLE_FILE_LOGGING.

    Returns:
        The configured package logger
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    if enable_file is None:
        enable_file = settings.ENABLE_FILE_LOGGING

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    # Avoid adding handlers twice when called again (reload, tests)
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if enable_file and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"expense_tracker_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
