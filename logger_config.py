"""Logging setup shared by the API, worker and notifier.

Each component writes to its own rotating file under settings.LOG_DIR.
Levels come from settings: LOG_LEVEL for every component, optionally
overridden per log file through LOG_LEVELS (e.g. {"worker.log": "DEBUG"}
to see the per-tick sweep summaries).
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from config import settings

_FORMATTER = logging.Formatter(
    '[%(asctime)s] %(levelname)s %(name)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


def _log_dir() -> str:
    log_dir = settings.LOG_DIR
    if not os.path.isabs(log_dir):
        log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), log_dir)
    os.makedirs(log_dir, exist_ok=True)
    return log_dir


def component_level(log_file: str) -> int:
    """Level for a component's log file; unknown level names fall back to INFO."""
    name = str(settings.LOG_LEVELS.get(log_file, settings.LOG_LEVEL)).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str, log_file: str = 'service.log') -> logging.Logger:
    """Return the logger for a component, attaching its handlers once.

    Args:
        name: Logger name (usually __name__)
        log_file: Component log file, e.g. 'worker.log'
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = component_level(log_file)
    logger.setLevel(level)

    file_handler = RotatingFileHandler(
        os.path.join(_log_dir(), log_file),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setFormatter(_FORMATTER)
    logger.addHandler(file_handler)

    if settings.LOG_TO_CONSOLE:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(_FORMATTER)
        logger.addHandler(console_handler)

    return logger


# uvicorn, sqlalchemy and httpx are chatty at INFO
for _noisy in ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'passlib'):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
