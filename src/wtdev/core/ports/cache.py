"""``.dev-port`` cache in the worktree root.

The cache records the port a worktree last started on. It is never trusted
for allocation: ``available_port`` always agrees with the computed assignment.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from wtdev.core.config.models import WtDevConfig
from wtdev.core.utils.io import read_int, write_text

from .allocator import PortAllocator

logger = logging.getLogger(__name__)

PORT_FILE_NAME = ".dev-port"


class PortCache:
    def __init__(self, project_root: Path) -> None:
        self.path = Path(project_root) / PORT_FILE_NAME

    def read(self) -> Optional[int]:
        port = read_int(self.path)
        return port if port is not None and port <= 65535 else None

    def write(self, port: int) -> None:
        try:
            write_text(self.path, str(port))
        except OSError as exc:
            logger.warning("Could not write port to %s: %s", self.path, exc)


def available_port(
    config: WtDevConfig,
    *,
    allocator: Optional[PortAllocator] = None,
) -> int:
    """Port to start a dev server on, updating the cache.

    Order: valid ``PORT`` override, then this worktree's computed assignment.
    A cached value that differs from the assignment (left by an override or an
    older pool or policy) is replaced rather than reused.
    """
    alloc = allocator or PortAllocator.from_config(config.dev_server)
    cache = PortCache(config.project_root)

    override = alloc.override()
    if override is not None:
        cache.write(override)
        return override

    port = alloc.computed_port(config.project_root)
    cached = cache.read()
    if cached != port:
        if cached is not None:
            logger.debug("Replacing cached port %s with assigned port %s", cached, port)
        cache.write(port)
    return port


def port_from_file(config: WtDevConfig, *, allocator: Optional[PortAllocator] = None) -> int:
    """Cached port if present, else the computed assignment. Never probes the OS."""
    cached = PortCache(config.project_root).read()
    if cached is not None:
        return cached
    alloc = allocator or PortAllocator.from_config(config.dev_server)
    return alloc.assign(config.project_root)


__all__ = ["PORT_FILE_NAME", "PortCache", "available_port", "port_from_file"]
