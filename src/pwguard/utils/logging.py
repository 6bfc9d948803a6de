"""Logging setup for the CLI and the long-running watchdog."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pwguard.config.app import LoggingSettings

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying transition payloads when present."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        transition = getattr(record, "transition", None)
        if transition is not None:
            payload["transition"] = transition
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(verbose: bool = False) -> None:
    """
    Configure console logging for CLI commands.

    Args:
        verbose: If True, enable DEBUG level logging
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt=DATE_FORMAT,
    )

    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def setup_file_logging(settings: LoggingSettings, verbose: bool = False) -> logging.Logger:
    """
    Attach a rotating file handler to the ``pwguard`` logger.

    Args:
        settings: Log level, format, path and rotation settings
        verbose: Force DEBUG regardless of settings.level

    Returns:
        The configured ``pwguard`` logger
    """
    logger = logging.getLogger("pwguard")
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper())
    logger.setLevel(level)

    log_file_path = Path(settings.file).expanduser()

    # Avoid duplicate handlers if logger already configured
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file_path:
            return logger

    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file_path,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backup_count,
    )
    file_handler.setLevel(level)
    if settings.format == "json":
        file_handler.setFormatter(JsonFormatter())
    else:
        file_handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    logger.addHandler(file_handler)
    return logger
