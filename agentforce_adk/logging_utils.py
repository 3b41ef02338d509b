"""Logging setup for applications built on agentforce_adk.

The library itself only creates loggers; call configure_logging() from an
application entry point to attach handlers.
"""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from agentforce_adk.config import get_settings


LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    # Above CRITICAL, so nothing is emitted.
    "silent": logging.CRITICAL + 10,
}


def parse_level(name: Optional[str]) -> int:
    if not name:
        return logging.INFO
    level = _LEVELS.get(name.strip().lower())
    if level is None:
        raise ValueError(f"Unknown log level '{name}'. Use one of: {', '.join(_LEVELS)}")
    return level


def configure_logging(level: Optional[str] = None, log_path: Optional[str] = None) -> logging.Logger:
    """Attach console (and optional rotating file) handlers to the package logger.

    Args:
        level: debug, info, warn, error or silent; defaults to LOG_LEVEL
        log_path: Log file; defaults to LOG_PATH. No file handler when unset.

    Returns:
        The ``agentforce_adk`` logger
    """
    settings = get_settings()
    resolved_level = parse_level(level or settings.log_level)
    path = log_path or settings.log_path

    package_logger = logging.getLogger("agentforce_adk")
    package_logger.setLevel(resolved_level)
    package_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if path:
        Path(path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.TimedRotatingFileHandler(
            path,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    return package_logger
