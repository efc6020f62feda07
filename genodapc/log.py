"""Logging utilities for genodapc.

Library modules log through loguru's ``logger``; applications call
:func:`setup_logging` once to choose where records go. Worker processes
start with loguru's default handler, so pools call
:func:`setup_worker_logging` with the parent's :func:`console_level`.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

_FORMAT = "{time:HH:mm:ss} | <level>{level: <8}</level> | {message}"

# None until setup_logging() runs; loguru's default handler is then left alone.
_console_level: Optional[str] = None


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure loguru handlers.

    Args:
        verbose: If True, the console handler logs at DEBUG instead of INFO.
        log_file: Optional path; DEBUG records are written there as JSON lines.
    """
    global _console_level
    logger.remove()

    level = "DEBUG" if verbose else "INFO"
    logger.add(sys.stderr, level=level, format=_FORMAT, colorize=True)
    _console_level = level

    if log_file:
        logger.add(log_file, serialize=True, level="DEBUG")


def console_level() -> Optional[str]:
    """Console level chosen by :func:`setup_logging`, or None if never called."""
    return _console_level


def setup_worker_logging(level: Optional[str]) -> None:
    """Console-only handler for a worker process.

    The JSON file sink stays with the parent process.
    """
    global _console_level
    if level is None:
        return
    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT, colorize=True)
    _console_level = level
