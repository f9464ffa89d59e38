"""Logging helpers shared across the resolution engine, repositories and CLI.

Structured fields are attached to records through ``extra=extra_context(...)``
so handlers and tests can inspect ``record.event``, ``record.outcome`` and so
on without parsing messages.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import urllib.parse
from typing import Any, Dict, Optional

from constants import Constants


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping for a log call, dropping None values.

    Unknown keys are passed through unchanged; keys colliding with
    ``LogRecord`` attributes are prefixed with ``ctx_``.
    """
    reserved = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__)
    context: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        context[f"ctx_{key}" if key in reserved else key] = value
    return context


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True if DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: Optional[str]) -> str:
    """Strip credentials, query and fragment from a URL before logging it."""
    if not url:
        return ""
    try:
        parts = urllib.parse.urlsplit(str(url))
    except ValueError:
        return "<unparseable-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds, measured to now while the timer is running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 3)


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure root logging for the command line entry point.

    Level precedence: explicit argument, then the GAVFETCH_LOG_LEVEL
    environment variable, then INFO. Library modules never call this.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_gavfetch", False):
            root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
    console._gavfetch = True  # type: ignore[attr-defined]
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(Constants.FILE_LOG_FORMAT))
        file_handler._gavfetch = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    root.setLevel(level_value)
