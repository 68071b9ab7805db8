"""Machine-wide coordination primitives (PID file, start lock)."""
from __future__ import annotations

from .store import (
    DEFAULT_PREFIX,
    LOCK_KEY,
    PID_KEY,
    FileSingletonStore,
    SingletonStore,
    break_abandoned_lock,
    lock_is_abandoned,
    sanitize_key,
    start_lock,
)

__all__ = [
    "DEFAULT_PREFIX",
    "FileSingletonStore",
    "LOCK_KEY",
    "PID_KEY",
    "SingletonStore",
    "break_abandoned_lock",
    "lock_is_abandoned",
    "sanitize_key",
    "start_lock",
]
