"""Logging configuration for roku-pkg."""

import logging
import sys
from enum import IntEnum
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler

# Chatty third-party loggers that only matter with --debug
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO | None = None,
    debug: bool = False,
) -> Console:
    """Configure logging based on CLI options.

    Args:
        verbosity: Number of -v flags (0=normal, 1+=debug for roku-pkg)
        quiet: Suppress non-error output (takes precedence over debug/verbosity)
        no_color: Disable colored output
        stream: Output stream for logs (default: stderr)
        debug: Also enable debug output from HTTP libraries

    Returns:
        Configured Rich console for output

    Note:
        Flag precedence: quiet > debug > verbosity
    """
    if quiet:
        level = LogLevel.QUIET
    elif debug or verbosity >= 1:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    console = Console(
        file=stream or sys.stderr,
        force_terminal=False if no_color else None,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=debug or verbosity >= 2,
        show_path=debug or verbosity >= 2,
    )

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    third_party_level = logging.DEBUG if debug else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return console
