"""Per-worktree dev server: status, stop, start (optionally forced) and logs.

The dev server itself is an opaque child process identified by the port it
binds. Starting one first ensures the shared Inngest server, then runs the
configured command in the foreground until it exits or wtdev is interrupted.
"""
from __future__ import annotations

import enum
import logging
import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, HTTPSHandler, Request, build_opener

from wtdev.core.config.models import WtDevConfig, dev_server_log_path
from wtdev.core.inngest.manager import EnsureResult, InngestManager
from wtdev.core.ports.allocator import PortAllocator, WorktreeConfig, get_worktree_config
from wtdev.core.ports.cache import PortCache
from wtdev.core.ports.prober import PortProber
from wtdev.core.process.runner import follow_log, run_foreground
from wtdev.core.process.terminator import PortTerminator, manual_kill_hint

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT_SECONDS = 2.0
OK_STATUSES = (200, 307)

Runner = Callable[..., int]


class _NoRedirect(HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[override]
        return None


def check_connection(base_url: str, *, timeout_seconds: float = CONNECTION_TIMEOUT_SECONDS) -> int:
    """GET ``base_url`` and return the HTTP status, or 0 if no response arrived.

    Redirects are not followed, so a Next.js 307 is reported as 307.
    Certificates are not verified for https (local certs are self-signed).
    """
    handlers: list = [_NoRedirect()]
    if base_url.startswith("https"):
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        handlers.append(HTTPSHandler(context=context))
    opener = build_opener(*handlers)
    try:
        with opener.open(Request(base_url, method="GET"), timeout=timeout_seconds) as resp:
            return int(resp.status)
    except HTTPError as exc:
        return int(exc.code)
    except (URLError, OSError, ValueError):
        return 0


@dataclass(frozen=True)
class DevServerStatus:
    worktree: WorktreeConfig
    running: bool
    http_status: Optional[int] = None

    @property
    def responds_ok(self) -> bool:
        return self.http_status in OK_STATUSES

    def to_dict(self) -> dict:
        data = self.worktree.to_dict()
        data.update({"running": self.running, "http_status": self.http_status})
        return data


@dataclass(frozen=True)
class DevServerStopResult:
    port: int
    was_running: bool
    success: bool

    @property
    def hint(self) -> str:
        return manual_kill_hint(self.port)


class StartOutcome(enum.Enum):
    ALREADY_RUNNING = "already_running"
    KILL_FAILED = "kill_failed"
    EXITED = "exited"


@dataclass(frozen=True)
class StartResult:
    outcome: StartOutcome
    worktree: WorktreeConfig
    exit_code: int = 0
    inngest: Optional[EnsureResult] = None


class DevServerManager:
    def __init__(
        self,
        config: WtDevConfig,
        *,
        allocator: Optional[PortAllocator] = None,
        prober: Optional[PortProber] = None,
        terminator: Optional[PortTerminator] = None,
        inngest: Optional[InngestManager] = None,
        runner: Runner = run_foreground,
        connection_test: Callable[..., int] = check_connection,
        environ: Optional[dict[str, str]] = None,
    ) -> None:
        self.config = config
        self.timings = config.dev_server.timings
        self.environ = dict(os.environ) if environ is None else dict(environ)
        self.allocator = allocator or PortAllocator.from_config(config.dev_server, environ=self.environ)
        self.prober = prober if prober is not None else PortProber(timeout=self.timings.tool_timeout_seconds)
        self.terminator = terminator if terminator is not None else PortTerminator(
            prober=self.prober, timings=self.timings
        )
        self._inngest = inngest
        self._runner = runner
        self._connection_test = connection_test

    @property
    def inngest(self) -> InngestManager:
        if self._inngest is None:
            self._inngest = InngestManager(self.config, prober=self.prober)
        return self._inngest

    @property
    def log_file(self) -> Path:
        return dev_server_log_path(self.config.project_root)

    def worktree_config(self) -> WorktreeConfig:
        return get_worktree_config(self.config, allocator=self.allocator, environ=self.environ)

    def build_command(self, port: int) -> list[str]:
        return [part.replace("{port}", str(port)) for part in self.config.dev_server.dev_command]

    def status(self) -> DevServerStatus:
        wt = self.worktree_config()
        if not self.prober.is_port_in_use(wt.port):
            return DevServerStatus(wt, running=False)
        return DevServerStatus(wt, running=True, http_status=self._connection_test(wt.base_url))

    def stop(self) -> DevServerStopResult:
        wt = self.worktree_config()
        if not self.prober.is_port_in_use(wt.port):
            return DevServerStopResult(wt.port, was_running=False, success=True)
        success = self.terminator.kill_processes_on_port(wt.port)
        if not success:
            logger.warning("Failed to stop dev server. Try manually: %s", manual_kill_hint(wt.port))
        return DevServerStopResult(wt.port, was_running=True, success=success)

    def start(self, force: bool = False, *, notify: Optional[Callable[[str], None]] = None) -> StartResult:
        """Start the dev server in the foreground.

        Returns without starting when the port is busy and ``force`` is not
        set, or when a forced teardown could not free the port.
        """
        say = notify or (lambda _msg: None)
        wt = self.worktree_config()

        if self.prober.is_port_in_use(wt.port):
            if not force:
                return StartResult(StartOutcome.ALREADY_RUNNING, wt)
            say(f"Force restart requested, stopping processes on port {wt.port}...")
            if not self.terminator.kill_processes_on_port(wt.port):
                return StartResult(StartOutcome.KILL_FAILED, wt, exit_code=1)
            say(f"Port {wt.port} is now available")

        say("Ensuring Inngest server is running...")
        ensured = self.inngest.ensure()
        say(ensured.message)

        PortCache(self.config.project_root).write(wt.port)
        env = dict(self.environ)
        env["DEV_PORT"] = str(wt.port)
        env["PORT"] = str(wt.port)

        argv = self.build_command(wt.port)
        say(f"Starting dev server on port {wt.port}...")
        exit_code = self._runner(
            argv,
            cwd=self.config.project_root,
            env=env,
            grace_seconds=self.timings.shutdown_grace_seconds,
        )
        if exit_code != 0:
            logger.warning("Dev server exited with code %s", exit_code)
        return StartResult(StartOutcome.EXITED, wt, exit_code=exit_code, inngest=ensured)

    def logs(self) -> Optional[int]:
        """Follow the dev server log. None when there is no log file yet."""
        if not self.log_file.exists():
            return None
        return follow_log(self.log_file)


__all__ = [
    "DevServerManager",
    "DevServerStatus",
    "DevServerStopResult",
    "StartOutcome",
    "StartResult",
    "check_connection",
]
