"""Per-invocation logging setup for the wtdev CLI.

Core modules only log; the CLI decides where records go:
- stderr, formatted ``Warning: ...``, at ``WTDEV_LOG_LEVEL`` (default WARNING)
- optionally a file (``WTDEV_LOG_FILE``) with timestamps
- nothing at all in ``--json`` mode except the file, so stdout stays parseable
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from wtdev.core.utils.io import ensure_directory

LOG_LEVEL_ENV = "WTDEV_LOG_LEVEL"
LOG_FILE_ENV = "WTDEV_LOG_FILE"

_INSTALLED: list[logging.Handler] = []


def _level_from_name(name: str) -> int:
    value = getattr(logging, str(name).upper(), None)
    return value if isinstance(value, int) else logging.WARNING


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.levelno >= logging.ERROR:
            return f"Error: {message}"
        if record.levelno >= logging.WARNING:
            return f"Warning: {message}"
        return message


def configure_cli_logging(*, json_mode: bool = False, verbose: bool = False) -> None:
    """Install wtdev's handlers on the ``wtdev`` logger (idempotent)."""
    reset_cli_logging()

    logger = logging.getLogger("wtdev")
    level = logging.DEBUG if verbose else _level_from_name(os.environ.get(LOG_LEVEL_ENV, "WARNING"))
    logger.setLevel(level)
    logger.propagate = False

    if json_mode:
        handler: logging.Handler = logging.NullHandler()
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_ConsoleFormatter())
    handler.setLevel(level)
    logger.addHandler(handler)
    _INSTALLED.append(handler)

    log_file = os.environ.get(LOG_FILE_ENV, "").strip()
    if log_file:
        path = Path(log_file).expanduser().resolve()
        ensure_directory(path.parent)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(logging.DEBUG if verbose else level)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(fh)
        _INSTALLED.append(fh)


def reset_cli_logging() -> None:
    """Remove handlers installed by :func:`configure_cli_logging`."""
    logger = logging.getLogger("wtdev")
    for h in list(_INSTALLED):
        logger.removeHandler(h)
        try:
            h.close()
        except OSError:
            pass
    _INSTALLED.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


__all__ = ["LOG_FILE_ENV", "LOG_LEVEL_ENV", "configure_cli_logging", "reset_cli_logging"]
