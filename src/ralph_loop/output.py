"""Operator-facing output for ralph-loop.

Banners and per-iteration status lines go to stdout and respect the
verbosity chosen on the command line (``--quiet`` / ``--verbose``) or via
``RALPH_VERBOSITY``.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Any, Optional

BANNER_WIDTH = 60
VERBOSITY_LEVELS = ("quiet", "normal", "verbose")


@dataclass
class OutputConfig:
    """Output configuration.

    Attributes:
        verbosity: Output level - "quiet", "normal", or "verbose"
    """

    verbosity: str = "normal"  # quiet|normal|verbose


_output_config: Optional[OutputConfig] = None


def get_output_config() -> OutputConfig:
    """Return the configured output settings, or defaults from the environment."""
    if _output_config is not None:
        return _output_config

    verbosity = os.environ.get("RALPH_VERBOSITY", "normal")
    if verbosity not in VERBOSITY_LEVELS:
        verbosity = "normal"
    return OutputConfig(verbosity=verbosity)


def set_output_config(config: Optional[OutputConfig]) -> None:
    """Set (or with None, reset) the global output configuration."""
    global _output_config
    _output_config = config


def print_output(message: str, level: str = "normal", file: Any = None, end: str = "\n") -> None:
    """Print output respecting the current verbosity level.

    - "error" messages: always printed, to stderr by default
    - "quiet" messages: printed in every mode
    - "normal" messages: printed in normal and verbose modes
    - "verbose" messages: only printed in verbose mode
    """
    config = get_output_config()

    if level == "error":
        should_print = True
        if file is None:
            file = sys.stderr
    elif level == "quiet":
        should_print = True
    elif level == "verbose":
        should_print = config.verbosity == "verbose"
    else:
        should_print = config.verbosity in ("normal", "verbose")

    if should_print:
        if file is None:
            file = sys.stdout
        print(message, file=file, end=end, flush=True)


def print_banner(title: str, level: str = "normal") -> None:
    """Print a title framed by ``=`` rules."""
    rule = "=" * BANNER_WIDTH
    print_output("", level=level)
    print_output(rule, level=level)
    print_output(f"  {title}", level=level)
    print_output(rule, level=level)
    print_output("", level=level)
