"""Logging configuration for ralph-loop.

Warnings about recoverable failures (a malformed prd.json, an agent that
exited non-zero, an archive that could not be written) go through the
standard ``logging`` machinery to stderr, so they never interleave with the
agent's own stdout. The console shows only ralph_loop's own INFO and DEBUG
records; other libraries surface at WARNING and above.

Usage:
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger(__name__)
    >>> logger.warning("Agent exited with code %s", 1)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "ralph_loop"

# Operators read these between banners, so the default line is short.
CONSOLE_FORMAT = "ralph-loop: %(levelname)s: %(message)s"
VERBOSE_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class _PackageOnlyFilter(logging.Filter):
    """Drop INFO and DEBUG records that do not come from ralph_loop itself."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return record.name == PACKAGE_LOGGER or record.name.startswith(PACKAGE_LOGGER + ".")


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Path] = None,
    quiet: bool = False,
) -> logging.Logger:
    """Configure the root logger for a ralph-loop run.

    Args:
        verbose: If True, show DEBUG records with timestamps and logger names
        log_file: Optional path to a log file that always receives DEBUG records
        quiet: If True, only errors reach the console

    Returns:
        The configured root logger
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handlers: list[logging.Handler] = []

    # stderr, so nothing interleaves with the agent's forwarded stdout
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(VERBOSE_CONSOLE_FORMAT if verbose else CONSOLE_FORMAT, DATE_FORMAT)
    )
    console_handler.addFilter(_PackageOnlyFilter())
    handlers.append(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    # The file handler needs DEBUG records even when the console is quieter.
    root_logger.setLevel(logging.DEBUG if log_file else level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    return root_logger
