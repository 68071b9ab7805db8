"""File I/O helpers (atomic writes, integer state files)."""
from __future__ import annotations

from .core import (
    PathLike,
    atomic_write,
    ensure_directory,
    ensure_parent_dir,
    read_int,
    remove_file,
    write_text,
)

__all__ = [
    "PathLike",
    "atomic_write",
    "ensure_directory",
    "ensure_parent_dir",
    "read_int",
    "remove_file",
    "write_text",
]
