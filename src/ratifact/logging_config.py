"""Logging setup shared by the dashboard and the CLI commands."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from .config import AppConfig

LOGGER_NAME = "ratifact"

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(config: AppConfig, *, console: bool = True) -> logging.Logger:
    """Set up the ratifact logger.

    Args:
        config: Application configuration.
        console: Attach a Rich console handler. The dashboard turns this off
            because console output would tear the full-screen layout.

    Returns:
        Configured logger instance.

    Raises:
        ValueError: If ``config.log_level`` is not a logging level name.

    """
    level_name = config.log_level.upper()
    if level_name not in _VALID_LEVELS:
        raise ValueError(f"Invalid log_level: {config.log_level!r}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name))

    # Clear existing handlers to avoid duplicates on re-setup
    if logger.handlers:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()

    if console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
        )
        console_handler.setLevel(logging.INFO)
        logger.addHandler(console_handler)

    config.log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(config.log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    )
    logger.addHandler(file_handler)

    return logger
