"""Logging configuration and utilities."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import get_config


console = Console()

# Libraries that log every HTTP request or SQL statement at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "telegram", "aiosqlite", "hpack")


def setup_logger(
    name: str = "whalewatch",
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
) -> logging.Logger:
    """
    Set up logger with file and console handlers.

    Args:
        name: Logger name
        log_file: Path to log file (optional, uses config if not provided)
        log_level: Logging level (optional, uses config if not provided)

    Returns:
        Configured logger instance
    """
    config = get_config()

    log_file = log_file or config.log_file
    log_level = log_level or config.log_level

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    simple_formatter = logging.Formatter(
        fmt="%(message)s",
        datefmt="[%X]",
    )

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.log_max_size_mb * 1024 * 1024,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        logger.addHandler(file_handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def get_logger(name: str = "whalewatch") -> logging.Logger:
    """Get a logger under the ``whalewatch`` hierarchy.

    Child loggers propagate to the root ``whalewatch`` logger, which owns the
    handlers configured by :func:`setup_logger`.
    """
    if name != "whalewatch" and not name.startswith("whalewatch."):
        name = f"whalewatch.{name}"
    return logging.getLogger(name)


class LoggerMixin:
    """Mixin class to add logging capabilities to any class."""

    @property
    def logger(self) -> logging.Logger:
        """Get logger for this class."""
        return get_logger(f"whalewatch.{self.__class__.__name__}")
