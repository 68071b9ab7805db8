"""System-wide Inngest dev server shared by every worktree.

At most one instance runs per machine. Coordination goes through a
:class:`~wtdev.core.coordination.SingletonStore`:

- the ``pid`` key names the running instance; it is authoritative while that
  process is alive and stale otherwise; a stale entry is removed only while
  it still names the dead PID
- the ``lock`` key serializes concurrent spawns; it is held only for the
  spawn itself, never across the health wait, and is broken when the PID it
  records has died

``ensure`` is the idempotent entry point and is safe to call from any number
of concurrent invocations. After spawn the manager keeps only the PID; the
process handle is dropped and every later interaction is by PID lookup.
"""
from __future__ import annotations

import enum
import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from wtdev.core.config.loader import state_dir
from wtdev.core.config.models import WtDevConfig, inngest_log_path
from wtdev.core.coordination import (
    LOCK_KEY,
    PID_KEY,
    FileSingletonStore,
    SingletonStore,
    lock_is_abandoned,
    start_lock,
)
from wtdev.core.exceptions import ServiceStartError
from wtdev.core.ports.prober import PortProber
from wtdev.core.process.inspector import is_process_alive, kill_pid
from wtdev.core.process.locator import ProcessLocator
from wtdev.core.process.runner import follow_log
from wtdev.core.utils.io import ensure_parent_dir
from wtdev.core.utils.subprocess import detached_popen_kwargs

logger = logging.getLogger(__name__)

INSTALL_HINT = "pnpm add -D inngest-cli"


class ServiceState(enum.Enum):
    """Observed state of the shared instance.

    STARTING means the spawn lock is held and no PID is recorded yet. Stopping
    is synchronous inside :meth:`InngestManager.stop` and is never observed.
    """

    ABSENT = "absent"
    STARTING = "starting"
    RUNNING = "running"
    STALE = "stale"


class EnsureOutcome(enum.Enum):
    ALREADY_RUNNING = "already_running"
    PORT_IN_USE = "port_in_use"
    STARTED_BY_OTHER = "started_by_other"
    CONTENDED = "contended"
    STARTED = "started"
    STARTED_UNHEALTHY = "started_unhealthy"


@dataclass(frozen=True)
class ServiceStatus:
    state: ServiceState
    port: int
    log_file: Path
    pid: Optional[int] = None
    stale_pid: Optional[int] = None

    @property
    def running(self) -> bool:
        return self.state is ServiceState.RUNNING

    @property
    def message(self) -> str:
        if self.running:
            return f"Inngest dev server is running (PID: {self.pid})"
        if self.state is ServiceState.STALE:
            return "Inngest dev server is not running (stale PID file found)"
        if self.state is ServiceState.STARTING:
            return "Inngest dev server is starting (another process holds the start lock)"
        return "Inngest dev server is not running"

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "state": self.state.value,
            "pid": self.pid,
            "port": self.port,
            "ui_url": f"http://localhost:{self.port}",
            "log_file": str(self.log_file),
            "message": self.message,
        }


@dataclass(frozen=True)
class EnsureResult:
    outcome: EnsureOutcome
    port: int
    pid: Optional[int] = None
    cleaned_stale_pid: Optional[int] = None

    @property
    def spawned(self) -> bool:
        return self.outcome in (EnsureOutcome.STARTED, EnsureOutcome.STARTED_UNHEALTHY)

    @property
    def message(self) -> str:
        o = self.outcome
        if o is EnsureOutcome.ALREADY_RUNNING:
            return f"Inngest dev server already running (PID: {self.pid})"
        if o is EnsureOutcome.PORT_IN_USE:
            return f"Inngest dev server already running on port {self.port}"
        if o is EnsureOutcome.STARTED_BY_OTHER:
            return "Inngest dev server started by another process"
        if o is EnsureOutcome.CONTENDED:
            return "Another process is starting the Inngest server..."
        if o is EnsureOutcome.STARTED:
            return f"Inngest dev server started (PID: {self.pid})"
        return "Server started but health check timed out. The server may still be initializing."

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "pid": self.pid,
            "port": self.port,
            "ui_url": f"http://localhost:{self.port}",
            "message": self.message,
        }


@dataclass(frozen=True)
class StopResult:
    port: int
    killed: tuple[int, ...] = ()
    port_still_in_use: bool = False

    @property
    def stopped_any(self) -> bool:
        return bool(self.killed)

    def to_dict(self) -> dict:
        return {
            "port": self.port,
            "killed": list(self.killed),
            "port_still_in_use": self.port_still_in_use,
        }


class _Prober(Protocol):
    def is_port_in_use(self, port: int) -> bool: ...


class _Locator(Protocol):
    def find_listening_pids(self, port: int) -> set[int]: ...


Spawner = Callable[[Sequence[str], Path, Path], int]


def is_http_healthy(url: str, *, timeout_seconds: float) -> bool:
    """True when ``url`` answers with a status below 500."""
    req = Request(url, method="GET")
    try:
        with urlopen(req, timeout=timeout_seconds) as resp:  # noqa: S310
            return int(resp.status) < 500
    except HTTPError as exc:
        # Any HTTP response implies a server is listening.
        return exc.code < 500
    except (URLError, OSError, ValueError):
        return False


def find_inngest_cli() -> list[str]:
    """Locate the Inngest CLI: ``pnpx inngest-cli`` first, then ``inngest-cli``.

    Raises:
        ServiceStartError: Neither is on PATH.
    """
    if shutil.which("pnpx"):
        return ["pnpx", "inngest-cli"]
    if shutil.which("inngest-cli"):
        return ["inngest-cli"]
    raise ServiceStartError(
        f"Could not find inngest-cli. Please ensure it is installed: {INSTALL_HINT}",
        context={"searched": ["pnpx", "inngest-cli"]},
    )


def spawn_detached(argv: Sequence[str], cwd: Path, log_file: Path) -> int:
    """Start ``argv`` in its own session with output appended to ``log_file``.

    Returns the child PID. The handle is not retained.
    """
    ensure_parent_dir(log_file)
    with open(log_file, "ab") as log:
        try:
            proc = subprocess.Popen(  # noqa: S603
                list(argv),
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=log,
                **detached_popen_kwargs(),
            )
        except OSError as exc:
            raise ServiceStartError(
                f"Failed to start Inngest: {exc}",
                context={"argv": list(argv)},
            ) from exc
    return proc.pid


class InngestManager:
    def __init__(
        self,
        config: WtDevConfig,
        *,
        store: Optional[SingletonStore] = None,
        prober: Optional[_Prober] = None,
        locator: Optional[_Locator] = None,
        spawner: Spawner = spawn_detached,
        http_probe: Callable[..., bool] = is_http_healthy,
        is_alive: Callable[[int], bool] = is_process_alive,
        kill: Callable[[int], bool] = kill_pid,
        sleep: Callable[[float], None] = time.sleep,
        cli_finder: Callable[[], list[str]] = find_inngest_cli,
    ) -> None:
        self.config = config
        self.dev = config.dev_server
        self.timings = config.dev_server.timings
        self.port = config.dev_server.inngest_port
        self.log_file = inngest_log_path(config.project_root)
        self.store = store if store is not None else FileSingletonStore(state_dir())
        timeout = self.timings.tool_timeout_seconds
        self.prober = prober if prober is not None else PortProber(timeout=timeout)
        self.locator = locator if locator is not None else ProcessLocator(timeout=timeout)
        self._spawn = spawner
        self._http_probe = http_probe
        self._is_alive = is_alive
        self._kill = kill
        self._sleep = sleep
        self._cli_finder = cli_finder

    @property
    def ui_url(self) -> str:
        return f"http://localhost:{self.port}"

    # ---- status --------------------------------------------------------

    def get_status(self) -> ServiceStatus:
        pid = self.store.read_int(PID_KEY)
        if pid is None:
            lock_held = self.store.read(LOCK_KEY) is not None
            if lock_held and not lock_is_abandoned(self.store, LOCK_KEY, self._is_alive):
                return ServiceStatus(ServiceState.STARTING, self.port, self.log_file)
            return ServiceStatus(ServiceState.ABSENT, self.port, self.log_file)
        if self._is_alive(pid):
            return ServiceStatus(ServiceState.RUNNING, self.port, self.log_file, pid=pid)
        return ServiceStatus(ServiceState.STALE, self.port, self.log_file, stale_pid=pid)

    def is_healthy(self) -> bool:
        return self._http_probe(f"{self.ui_url}/", timeout_seconds=self.timings.health_check_timeout_seconds)

    def wait_for_health(self) -> bool:
        t = self.timings
        for _ in range(t.health_check_attempts):
            if self.is_healthy():
                return True
            self._sleep(t.health_check_interval_seconds)
        return False

    # ---- start ---------------------------------------------------------

    def build_command(self) -> list[str]:
        prefix = list(self.dev.inngest_command) if self.dev.inngest_command else self._cli_finder()
        argv = prefix + ["dev", "--port", str(self.port)]
        for url in self.dev.discovery_urls():
            argv += ["--sdk-url", url]
        return argv

    def _spawn_under_lock(self) -> Optional[tuple[int, bool]]:
        """Spawn while holding the start lock.

        Returns None when the lock is held elsewhere, else ``(pid, spawned)``
        where ``spawned`` is False if another invocation finished a spawn
        between our checks and our acquiring the lock.
        """
        with start_lock(self.store, LOCK_KEY, owner_alive=self._is_alive) as acquired:
            if not acquired:
                return None
            current = self.get_status()
            if current.running and current.pid is not None:
                return current.pid, False
            argv = self.build_command()
            logger.info("Starting system-wide Inngest dev server on port %s", self.port)
            logger.debug("Inngest command: %s", argv)
            pid = self._spawn(argv, self.config.project_root, self.log_file)
            self.store.write_atomic(PID_KEY, str(pid))
            return pid, True

    def ensure(self) -> EnsureResult:
        """Start the shared server unless it is already running."""
        status = self.get_status()
        if status.running:
            return EnsureResult(EnsureOutcome.ALREADY_RUNNING, self.port, pid=status.pid)

        cleaned: Optional[int] = None
        if status.state is ServiceState.STALE:
            logger.info("Cleaning up stale Inngest PID file (PID %s)", status.stale_pid)
            if self.store.delete_if(PID_KEY, str(status.stale_pid)):
                cleaned = status.stale_pid

        if self.prober.is_port_in_use(self.port):
            return EnsureResult(EnsureOutcome.PORT_IN_USE, self.port, cleaned_stale_pid=cleaned)

        spawned = self._spawn_under_lock()
        if spawned is None:
            self._sleep(self.timings.lock_contention_wait_seconds)
            if self.is_healthy():
                return EnsureResult(EnsureOutcome.STARTED_BY_OTHER, self.port, cleaned_stale_pid=cleaned)
            spawned = self._spawn_under_lock()
            if spawned is None:
                return EnsureResult(EnsureOutcome.CONTENDED, self.port, cleaned_stale_pid=cleaned)

        pid, by_us = spawned
        if not by_us:
            return EnsureResult(EnsureOutcome.STARTED_BY_OTHER, self.port, pid=pid, cleaned_stale_pid=cleaned)

        if self.wait_for_health():
            return EnsureResult(EnsureOutcome.STARTED, self.port, pid=pid, cleaned_stale_pid=cleaned)
        logger.warning("Inngest server started but health check timed out; it may still be initializing")
        return EnsureResult(EnsureOutcome.STARTED_UNHEALTHY, self.port, pid=pid, cleaned_stale_pid=cleaned)

    def start(self) -> EnsureResult:
        return self.ensure()

    # ---- stop ----------------------------------------------------------

    def _try_kill(self, pid: int) -> bool:
        try:
            return self._kill(pid)
        except OSError as exc:
            logger.warning("Failed to kill PID %s: %s", pid, exc)
            return False

    def stop(self) -> StopResult:
        """Kill the recorded instance plus any orphan listening on the port."""
        killed: list[int] = []
        pid = self.store.read_int(PID_KEY)
        if pid is not None and self._is_alive(pid) and self._try_kill(pid):
            killed.append(pid)

        for orphan in sorted(self.locator.find_listening_pids(self.port)):
            if orphan == pid:
                continue
            logger.info("Found orphaned process %s using port %s", orphan, self.port)
            if self._try_kill(orphan):
                killed.append(orphan)

        self.store.delete(PID_KEY)
        self._sleep(self.timings.stop_settle_seconds)
        still_in_use = self.prober.is_port_in_use(self.port)
        if still_in_use:
            logger.warning("Port %s may still be in use. Check manually.", self.port)
        return StopResult(self.port, tuple(killed), still_in_use)

    def restart(self) -> tuple[StopResult, EnsureResult]:
        stopped = self.stop()
        self._sleep(self.timings.restart_pause_seconds)
        return stopped, self.start()

    def logs(self) -> Optional[int]:
        """Follow inngest.log until interrupted. None when there is no log file yet."""
        if not self.log_file.exists():
            return None
        return follow_log(self.log_file)


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
