"""
Logging configuration for the Meet Transcriber.

Every meeting session logs through a session logger, so its records carry
the session id. Console lines show it as a ``[uuid]`` prefix and the
rotating log file keeps it as its own column.
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from datetime import datetime
from typing import Any, MutableMapping, Optional, Tuple

from meet_transcriber.config import settings


ROOT_LOGGER = "meeting_bot"
NO_SESSION = "-"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(session_prefix)s%(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(session_id)s | %(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class SessionContextFilter(logging.Filter):
    """Fill in the session fields the formatters expect on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = getattr(record, "session_id", None) or NO_SESSION
        record.session_id = session_id
        record.session_prefix = "" if session_id == NO_SESSION else f"[{session_id}] "
        return True


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Logger bound to one meeting session."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("session_id", self.extra["session_id"])
        kwargs["extra"] = extra
        return msg, kwargs

    @property
    def session_id(self) -> str:
        return self.extra["session_id"]


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[41m",  # Red background
        "RESET": "\033[0m"
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]

        # Color a copy so the file handler keeps the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{reset}"

        return super().format(record)


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    enable_file_logging: Optional[bool] = None
) -> logging.Logger:
    """
    Configure the ``meeting_bot`` logger tree.

    Args:
        log_level: Override log level from settings
        log_file: Override log file path
        enable_file_logging: Override ``settings.log_to_file``

    Returns:
        The root project logger
    """
    level = getattr(logging, log_level or settings.log_level)
    if enable_file_logging is None:
        enable_file_logging = settings.log_to_file

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    session_filter = SessionContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.addFilter(session_filter)
    console_handler.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if enable_file_logging:
        Path("logs").mkdir(exist_ok=True)
        log_filename = log_file or f"logs/meet_transcriber_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = RotatingFileHandler(
            log_filename,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.addFilter(session_filter)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger with the given name.

    Args:
        name: Logger name (will be prefixed with 'meeting_bot.')
    """
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_session_logger(name: str, session_id: str) -> SessionLoggerAdapter:
    """
    Get a child logger whose records carry ``session_id``.

    Usage:
        log = get_session_logger("scheduler", session.uuid)
        log.info("Worker slot acquired")
    """
    return SessionLoggerAdapter(get_logger(name), {"session_id": session_id})


# Initialize default logger
logger = setup_logging()
