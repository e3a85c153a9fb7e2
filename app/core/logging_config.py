"""
Logging setup shared by the CLI and the API.

Console output always; a daily rotating file under LOG_DIR when configured.

Usage:
    from app.core.logging_config import setup_logging

    setup_logging("DEBUG")
    logger = logging.getLogger(__name__)
"""

import logging
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_RETENTION_DAYS = 30


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger once.

    Args:
        level: Log level name (DEBUG, INFO, ...). Defaults to settings.LOG_LEVEL
        log_dir: Directory for the rotating log file. Defaults to settings.LOG_DIR

    Returns:
        The root logger
    """
    root_logger = logging.getLogger()
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    root_logger.setLevel(log_level)

    # Avoid adding duplicate handlers, only adjust the level
    if root_logger.handlers:
        for handler in root_logger.handlers:
            handler.setLevel(log_level)
        return root_logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_dir = log_dir or settings.LOG_DIR
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=path / f"import_{datetime.now().strftime('%Y-%m-%d')}.log",
            when="midnight",
            interval=1,
            backupCount=LOG_RETENTION_DAYS,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # SQLAlchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger
