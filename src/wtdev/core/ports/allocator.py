"""Deterministic, collision-free port assignment for git worktrees.

A worktree's preferred port is ``pool[md5(path) % len(pool)]``. Collisions are
resolved in worktree creation order: earlier worktrees keep their preferred
port, later ones walk a per-path sequence of secondary hashes
(``md5(f"{path}:{attempt}")``) until they find an unclaimed port.

Because a worktree's candidate sequence depends only on its own path, and
its priority only on the worktrees created before it, a port never moves
when a later worktree is added. Removing a worktree frees its port and
nothing else.

Two policies exist and are chosen per project (``port_policy``):

- ``hash``: every worktree hashes into the whole pool.
- ``reserved-base``: the first worktree (the main checkout) always gets
  ``pool[0]``; the others hash into ``pool[1:]``.
"""
from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import asdict, dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from wtdev.core.config.models import DevServerConfig, PortPolicy, WtDevConfig
from wtdev.core.exceptions import PortExhaustedError, PortValidationError
from wtdev.core.git.worktrees import find_containing_worktree, list_worktrees

logger = logging.getLogger(__name__)

PORT_ENV = "PORT"
HTTPS_ENV = "USE_HTTPS_LOCALHOST"
ATTEMPTS_PER_PORT = 10


def _hash_index(value: str, size: int) -> int:
    digest = hashlib.md5(value.encode("utf-8")).hexdigest()  # noqa: S324
    return int(digest[:8], 16) % size


def _validate_pool(ports: Sequence[int]) -> None:
    if not ports:
        raise PortValidationError("Port pool must not be empty")
    if len(set(ports)) != len(ports):
        raise PortValidationError("Port pool must not contain duplicates", context={"ports": list(ports)})
    for port in ports:
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise PortValidationError(f"Invalid port in pool: {port!r}", context={"port": repr(port)})


def compute_hash_port(worktree_path: str, ports: Sequence[int]) -> int:
    """Primary candidate for ``worktree_path``."""
    _validate_pool(ports)
    return ports[_hash_index(worktree_path, len(ports))]


def compute_secondary_hash_port(worktree_path: str, ports: Sequence[int], attempt: int) -> int:
    """Candidate for collision-resolution ``attempt`` (1, 2, 3, ...)."""
    _validate_pool(ports)
    return ports[_hash_index(f"{worktree_path}:{attempt}", len(ports))]


def _claim(worktree: str, ports: Sequence[int], used: set[int]) -> Optional[int]:
    max_attempts = len(ports) * ATTEMPTS_PER_PORT
    for attempt in range(max_attempts):
        if attempt == 0:
            candidate = ports[_hash_index(worktree, len(ports))]
        else:
            candidate = ports[_hash_index(f"{worktree}:{attempt}", len(ports))]
        if candidate not in used:
            return candidate

    # Hash sequence unlucky on a nearly full pool: probe forward from the
    # primary slot so a free port is never missed.
    start = _hash_index(worktree, len(ports))
    for offset in range(len(ports)):
        candidate = ports[(start + offset) % len(ports)]
        if candidate not in used:
            return candidate
    return None


def resolve_all_ports(
    worktrees: Sequence[str],
    ports: Sequence[int],
    policy: PortPolicy = "hash",
) -> Dict[str, int]:
    """Assign a port to every worktree, in the given (creation) order.

    Raises:
        PortValidationError: Empty or invalid pool.
        PortExhaustedError: More worktrees than the pool can serve.
    """
    _validate_pool(ports)
    assignments: Dict[str, int] = {}
    used: set[int] = set()
    remaining: Sequence[int] = ports

    ordered = list(dict.fromkeys(worktrees))
    count = len(ordered)
    if policy == "reserved-base" and ordered:
        first = ordered.pop(0)
        assignments[first] = ports[0]
        used.add(ports[0])
        remaining = ports[1:]
        if ordered and not remaining:
            raise PortExhaustedError(count, len(ports))

    for wt in ordered:
        port = _claim(wt, remaining, used)
        if port is None:
            raise PortExhaustedError(count, len(ports))
        assignments[wt] = port
        used.add(port)
    return assignments


def port_override(environ: Optional[Dict[str, str]] = None) -> Optional[int]:
    """Return a valid ``PORT`` override, or None.

    An invalid value is reported as a warning and ignored.
    """
    env = os.environ if environ is None else environ
    raw = env.get(PORT_ENV)
    if not raw:
        return None
    try:
        port = int(raw.strip(), 10)
    except ValueError:
        port = 0
    if 1 <= port <= 65535:
        return port
    logger.warning('Invalid PORT env var "%s" (must be 1-65535), using hash-based assignment', raw)
    return None


@dataclass(frozen=True)
class WorktreeConfig:
    """Everything a worktree needs to know about its dev environment."""

    port: int
    protocol: str
    base_url: str
    inngest_port: int
    inngest_url: str

    def to_dict(self) -> dict:
        return asdict(self)


class PortAllocator:
    """Assigns the current worktree its port from a configured pool."""

    def __init__(
        self,
        ports: Sequence[int],
        *,
        policy: PortPolicy = "hash",
        list_worktrees_fn: Callable[[str], list[str]] = list_worktrees,
        environ: Optional[Dict[str, str]] = None,
    ) -> None:
        _validate_pool(ports)
        self.ports = tuple(ports)
        self.policy = policy
        self._list_worktrees = list_worktrees_fn
        self._environ = environ

    @classmethod
    def from_config(cls, config: DevServerConfig, **kwargs) -> PortAllocator:
        kwargs.setdefault(
            "list_worktrees_fn",
            partial(list_worktrees, ttl_seconds=config.timings.worktree_cache_ttl_seconds),
        )
        return cls(config.ports, policy=config.port_policy, **kwargs)

    def resolve_all(self, worktrees: Sequence[str]) -> Dict[str, int]:
        return resolve_all_ports(worktrees, self.ports, self.policy)

    def computed_port(self, project_root: Path | str) -> int:
        """Hash-based port for the worktree containing ``project_root`` (no override)."""
        root = str(project_root)
        worktrees = self._list_worktrees(root)
        if not worktrees:
            return self.ports[0]
        mine = find_containing_worktree(root, worktrees)
        if mine is None:
            return self.ports[0]
        # Worktree paths are realpaths; match on the same form.
        normalized = {os.path.realpath(wt): wt for wt in worktrees}
        assignments = self.resolve_all(worktrees)
        return assignments.get(normalized.get(mine, mine), self.ports[0])

    def override(self) -> Optional[int]:
        return port_override(self._environ)

    def assign(self, project_root: Path | str) -> int:
        """Port for the current invocation: ``PORT`` override, else the computed port."""
        override = self.override()
        if override is not None:
            return override
        return self.computed_port(project_root)


def get_worktree_config(
    config: WtDevConfig,
    *,
    allocator: Optional[PortAllocator] = None,
    environ: Optional[Dict[str, str]] = None,
) -> WorktreeConfig:
    env = os.environ if environ is None else environ
    alloc = allocator or PortAllocator.from_config(config.dev_server, environ=dict(env))
    port = alloc.assign(config.project_root)
    protocol = "https" if env.get(HTTPS_ENV) == "true" else "http"
    inngest_port = config.dev_server.inngest_port
    return WorktreeConfig(
        port=port,
        protocol=protocol,
        base_url=f"{protocol}://localhost:{port}",
        inngest_port=inngest_port,
        inngest_url=f"http://localhost:{inngest_port}",
    )


__all__ = [
    "HTTPS_ENV",
    "PORT_ENV",
    "PortAllocator",
    "WorktreeConfig",
    "compute_hash_port",
    "compute_secondary_hash_port",
    "get_worktree_config",
    "port_override",
    "resolve_all_ports",
]
