"""Shared Inngest dev server lifecycle."""
from __future__ import annotations

from .manager import (
    EnsureOutcome,
    EnsureResult,
    InngestManager,
    ServiceState,
    ServiceStatus,
    StopResult,
    find_inngest_cli,
    is_http_healthy,
    spawn_detached,
)

__all__ = [
    "EnsureOutcome",
    "EnsureResult",
    "InngestManager",
    "ServiceState",
    "ServiceStatus",
    "StopResult",
    "find_inngest_cli",
    "is_http_healthy",
    "spawn_detached",
]
