"""Port inspection, allocation and caching."""
from __future__ import annotations

from .allocator import (
    PortAllocator,
    WorktreeConfig,
    compute_hash_port,
    compute_secondary_hash_port,
    get_worktree_config,
    port_override,
    resolve_all_ports,
)
from .cache import PORT_FILE_NAME, PortCache, available_port, port_from_file
from .inspectors import InspectResult, PortInspector
from .prober import PortProber, is_port_available, is_port_in_use, validate_port

__all__ = [
    "InspectResult",
    "PORT_FILE_NAME",
    "PortAllocator",
    "PortCache",
    "PortInspector",
    "PortProber",
    "WorktreeConfig",
    "available_port",
    "compute_hash_port",
    "compute_secondary_hash_port",
    "get_worktree_config",
    "is_port_available",
    "is_port_in_use",
    "port_from_file",
    "port_override",
    "resolve_all_ports",
    "validate_port",
]
