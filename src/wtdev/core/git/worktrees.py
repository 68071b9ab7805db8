"""Git worktree enumeration in creation order.

``git worktree list --porcelain`` reports the main working tree first and the
linked worktrees after it in the order they were added, which is the
priority order used for port collision resolution. Results are cached briefly
per working directory so a single invocation does not shell out repeatedly.
"""
from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from wtdev.core.utils.subprocess import run_with_timeout

logger = logging.getLogger(__name__)

WORKTREE_PREFIX = "worktree "
DEFAULT_CACHE_TTL_SECONDS = 5.0
GIT_TIMEOUT_SECONDS = 10.0


@dataclass
class _CacheEntry:
    cwd: str
    worktrees: list[str]
    timestamp: float


_cache: Optional[_CacheEntry] = None


def parse_worktree_porcelain(output: str) -> list[str]:
    """Extract worktree paths from porcelain output, preserving order."""
    paths: list[str] = []
    for line in output.splitlines():
        if line.startswith(WORKTREE_PREFIX):
            path = line[len(WORKTREE_PREFIX):].strip()
            if path:
                paths.append(path)
    return paths


def _normalize(path: str) -> str:
    try:
        return os.path.realpath(path)
    except OSError:
        return os.path.abspath(path)


def list_worktrees(
    cwd: Optional[Path | str] = None,
    *,
    ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
    now: Optional[float] = None,
) -> list[str]:
    """List realpath-normalized worktree paths in creation order.

    Returns an empty list outside a git repository or when git is missing.
    """
    global _cache
    key = str(cwd if cwd is not None else Path.cwd())
    current = time.monotonic() if now is None else now
    if _cache is not None and _cache.cwd == key and current - _cache.timestamp < ttl_seconds:
        return list(_cache.worktrees)

    try:
        cp = run_with_timeout(
            ["git", "worktree", "list", "--porcelain"],
            cwd=key,
            timeout=GIT_TIMEOUT_SECONDS,
            check=True,
        )
    except FileNotFoundError:
        logger.debug("git not found in PATH")
        return []
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        if "not a git repository" not in stderr:
            logger.warning("git worktree list failed: %s", stderr or exc)
        return []
    except (subprocess.TimeoutExpired, OSError) as exc:
        logger.warning("git worktree list failed: %s", exc)
        return []

    worktrees = [_normalize(p) for p in parse_worktree_porcelain(cp.stdout)]
    _cache = _CacheEntry(cwd=key, worktrees=worktrees, timestamp=current)
    return list(worktrees)


def clear_worktree_cache() -> None:
    global _cache
    _cache = None


def find_containing_worktree(path: Path | str, worktrees: Sequence[str]) -> Optional[str]:
    """Return the worktree that contains ``path``.

    When worktrees are nested (a linked worktree inside the main checkout),
    the deepest match wins.
    """
    target = Path(_normalize(str(path)))
    best: Optional[str] = None
    for wt in worktrees:
        root = Path(_normalize(wt))
        try:
            target.relative_to(root)
        except ValueError:
            continue
        if best is None or len(root.parts) > len(Path(best).parts):
            best = str(root)
    return best


__all__ = [
    "clear_worktree_cache",
    "find_containing_worktree",
    "list_worktrees",
    "parse_worktree_porcelain",
]
