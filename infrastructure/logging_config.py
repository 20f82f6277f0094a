"""Logging setup for the live mixer bridge.

All diagnostic output goes to stderr with a compact millisecond timestamp:
OSC and FX traffic is bursty and sub-second ordering matters when reading
a session log.
"""

from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s.%(msecs)03d " "[%(name)s] %(levelname)s " "%(message)s"
_LOG_DATE_FORMAT = "%H:%M:%S"

_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_log_level(name: str | None, default: int = logging.INFO) -> int:
    """Map a level name (case-insensitive) to a logging level, ``default`` if unknown."""
    if not name:
        return default
    return _LEVELS.get(name.strip().upper(), default)


def configure_logging(level: int = logging.INFO) -> None:
    """
    Configure root logger to write structured output to stderr.

    Idempotent: replaces any handlers installed by a previous call.

    Args:
        level: Python logging level (default: INFO)
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # One access line per WebSocket frame drowns the OSC trace
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pythonosc").setLevel(logging.WARNING)
