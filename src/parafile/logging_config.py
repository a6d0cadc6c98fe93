"""Logging setup shared by the CLI commands."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from parafile.config.models import LoggingSettings

_HANDLER_MARKER = "_parafile_handler"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s"


def configure_logging(
    settings: Optional[LoggingSettings] = None,
    *,
    verbose: bool = False,
    console: Optional[Console] = None,
) -> logging.Logger:
    """Install console and optional rotating-file handlers on the ``parafile`` logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        settings: Logging configuration; defaults apply when omitted.
        verbose: Force DEBUG level regardless of ``settings.level``.
        console: Console used by the rich handler.

    Returns:
        logging.Logger: The configured ``parafile`` package logger.
    """
    settings = settings or LoggingSettings()
    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.WARNING)

    logger = logging.getLogger("parafile")
    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_MARKER, False)]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    setattr(console_handler, _HANDLER_MARKER, True)
    logger.addHandler(console_handler)

    if settings.file:
        path = Path(settings.file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=settings.max_size_mb * 1024 * 1024,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        setattr(file_handler, _HANDLER_MARKER, True)
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)

    logger.propagate = False
    return logger


__all__ = ["configure_logging"]
