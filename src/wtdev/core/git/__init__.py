"""Git helpers."""
from __future__ import annotations

from .worktrees import (
    clear_worktree_cache,
    find_containing_worktree,
    list_worktrees,
    parse_worktree_porcelain,
)

__all__ = [
    "clear_worktree_cache",
    "find_containing_worktree",
    "list_worktrees",
    "parse_worktree_porcelain",
]
