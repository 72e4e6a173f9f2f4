"""
Logging setup for the newsline service.

Every module logs through the one application logger, and every per-call line
starts with ``[call_id]`` so a single call can be followed across both sockets,
the tool dispatcher and the backend client.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from newsline.config.constants import LOGGER_NAME

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_LOG_FILE = Path("logs") / "newsline.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

# Client libraries that log every frame or request at DEBUG/INFO
CHATTY_LIBRARY_LOGGERS = ("websockets", "httpx", "httpcore")


def resolve_log_file() -> Optional[Path]:
    """Log file from LOG_FILE; an empty value turns file logging off."""
    value = os.getenv("LOG_FILE")
    if value is None:
        return DEFAULT_LOG_FILE
    return Path(value) if value.strip() else None


def _rotating_handler(log_file: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_file, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT)
    handler.setFormatter(formatter)
    return handler


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Set up the application logger for the server process.

    Args:
        level: Level name; falls back to LOG_LEVEL, then INFO

    Returns:
        logging.Logger: The application logger, with a stdout handler and,
        unless disabled, a rotating file handler
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    # Reconfiguring (tests, uvicorn reload) must not stack handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = resolve_log_file()
    if log_file is not None:
        try:
            logger.addHandler(_rotating_handler(log_file, formatter))
        except OSError as e:
            logger.warning(f"File logging disabled, cannot write {log_file}: {e}")

    logger.propagate = False

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.info(f"Logging configured at {logging.getLevelName(numeric_level)}")
    return logger
