from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

PortPolicy = Literal["hash", "reserved-base"]

DEFAULT_BASE_PORT = 5001
DEFAULT_MAX_PORTS = 128
DEFAULT_INNGEST_PORT = 8288


@dataclass(frozen=True)
class Timings:
    """Bounds and intervals for every wait loop in wtdev.

    All loops are ``attempts x interval``; nothing waits unbounded.
    """

    sigkill_wait_seconds: float = 2.0
    port_release_wait_seconds: float = 1.0
    port_release_retries: int = 10
    kill_release_retries: int = 3
    max_kill_attempts: int = 5
    health_check_attempts: int = 20
    health_check_interval_seconds: float = 0.5
    health_check_timeout_seconds: float = 1.0
    lock_contention_wait_seconds: float = 2.0
    stop_settle_seconds: float = 0.5
    restart_pause_seconds: float = 1.0
    shutdown_grace_seconds: float = 1.0
    worktree_cache_ttl_seconds: float = 5.0
    tool_timeout_seconds: float = 5.0

    @classmethod
    def from_raw(cls, raw: Any) -> Timings:
        if not isinstance(raw, dict):
            return cls()
        known = {f.name: f.type for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in raw.items():
            if key not in known or value is None:
                continue
            kwargs[key] = int(value) if known[key] == "int" else float(value)
        return cls(**kwargs)


@dataclass(frozen=True)
class DevServerConfig:
    """Resolved ``dev_server`` settings."""

    ports: tuple[int, ...]
    inngest_port: int = DEFAULT_INNGEST_PORT
    port_policy: PortPolicy = "hash"
    dev_command: tuple[str, ...] = ("pnpm", "exec", "next", "dev", "--turbopack", "-p", "{port}")
    inngest_command: tuple[str, ...] | None = None
    discovery_path: str = "/api/inngest"
    timings: Timings = field(default_factory=Timings)

    def discovery_urls(self) -> list[str]:
        """Callback URLs the shared Inngest server polls, one per pool port."""
        return [f"http://localhost:{port}{self.discovery_path}" for port in self.ports]


@dataclass(frozen=True)
class WtDevConfig:
    """Complete configuration for one project checkout."""

    project_root: Path
    dev_server: DevServerConfig


def generate_port_pool(base_port: int, max_ports: int) -> tuple[int, ...]:
    """Generate ``max_ports`` consecutive ports starting at ``base_port``."""
    return tuple(base_port + i for i in range(max_ports))


def dev_server_log_path(project_root: Path) -> Path:
    return Path(project_root) / "dev-server.log"


def inngest_log_path(project_root: Path) -> Path:
    return Path(project_root) / "inngest.log"


__all__ = [
    "DEFAULT_BASE_PORT",
    "DEFAULT_INNGEST_PORT",
    "DEFAULT_MAX_PORTS",
    "DevServerConfig",
    "PortPolicy",
    "Timings",
    "WtDevConfig",
    "dev_server_log_path",
    "generate_port_pool",
    "inngest_log_path",
]
