"""Per-worktree dev server lifecycle."""
from __future__ import annotations

from .manager import (
    DevServerManager,
    DevServerStatus,
    DevServerStopResult,
    StartOutcome,
    StartResult,
    check_connection,
)

__all__ = [
    "DevServerManager",
    "DevServerStatus",
    "DevServerStopResult",
    "StartOutcome",
    "StartResult",
    "check_connection",
]
