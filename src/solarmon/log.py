"""Timestamped console logging.

info goes to stdout, warnings and errors to stderr. Debug output is gated on
SOLAR_DEBUG and info output can be silenced with SOLAR_QUIET for cron runs.
"""

import sys
from datetime import datetime

from .env import get_config


def _ts() -> str:
    """Get current timestamp string."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _emit(prefix: str, msg: str, stream=None) -> None:
    label = f"{prefix}: " if prefix else ""
    print(f"[{_ts()}] {label}{msg}", file=stream or sys.stdout)


def info(msg: str) -> None:
    """Print info message to stdout unless SOLAR_QUIET is set."""
    if not get_config().solar_quiet:
        _emit("", msg)


def debug(msg: str) -> None:
    """Print debug message if SOLAR_DEBUG is enabled."""
    if get_config().solar_debug:
        _emit("DEBUG", msg)


def warn(msg: str) -> None:
    _emit("WARN", msg, sys.stderr)


def error(msg: str) -> None:
    _emit("ERROR", msg, sys.stderr)


def exception(msg: str, exc: BaseException) -> None:
    """Print an error line naming the exception type."""
    _emit("ERROR", f"{msg}: {type(exc).__name__}: {exc}", sys.stderr)
