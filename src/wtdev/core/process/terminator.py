"""Free a TCP port by force-killing its listeners and verifying release.

The wrapped dev servers do not reliably honour SIGTERM, so termination is
SIGKILL only, limited to the PIDs *listening* on the port. While waiting for
release, a port that is still busy but no longer held by any PID we targeted
has been re-bound by an unrelated process; that is reported as a failure and
the new owner is left alone.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

from wtdev.core.config.models import Timings
from wtdev.core.exceptions import PortReboundError
from wtdev.core.ports.prober import PortProber, validate_port

from .inspector import kill_pid
from .locator import ProcessLocator

logger = logging.getLogger(__name__)


class _Prober(Protocol):
    def is_port_in_use(self, port: int) -> bool: ...


def manual_kill_hint(port: int) -> str:
    return f"lsof -ti :{port} | xargs kill -9"


class PortTerminator:
    def __init__(
        self,
        prober: Optional[_Prober] = None,
        locator: Optional[ProcessLocator] = None,
        *,
        kill: Callable[[int], bool] = kill_pid,
        sleep: Callable[[float], None] = time.sleep,
        timings: Optional[Timings] = None,
    ) -> None:
        self.timings = timings or Timings()
        timeout = self.timings.tool_timeout_seconds
        self.prober = prober if prober is not None else PortProber(timeout=timeout)
        self.locator = locator if locator is not None else ProcessLocator(timeout=timeout)
        self._kill = kill
        self._sleep = sleep

    def _kill_all(self, pids: set[int], targets: set[int]) -> None:
        for pid in sorted(pids):
            try:
                self._kill(pid)
            except OSError as exc:
                logger.warning("Could not kill PID %s: %s", pid, exc)
                continue
            targets.add(pid)

    def wait_for_port_release(self, port: int, target_pids: set[int], max_retries: Optional[int] = None) -> bool:
        """Poll until ``port`` is free. Returns False after ``max_retries`` checks.

        Raises:
            PortReboundError: The port is busy and none of its listeners are in
                ``target_pids``.
        """
        retries = self.timings.port_release_retries if max_retries is None else max_retries
        for _ in range(retries):
            if not self.prober.is_port_in_use(port):
                return True
            if target_pids:
                current = self.locator.find_listening_pids(port)
                if current and not (current & target_pids):
                    raise PortReboundError(port, min(current))
            self._sleep(self.timings.port_release_wait_seconds)
        return False

    def kill_processes_on_port(self, port: int) -> bool:
        """Kill every process listening on ``port``. Returns True once it is free."""
        port = validate_port(port)
        t = self.timings
        targets = set(self.locator.find_listening_pids(port))

        for attempt in range(1, t.max_kill_attempts + 1):
            pids = self.locator.find_listening_pids(port)
            if not pids:
                # Momentary gap between process death and socket release.
                if not self.prober.is_port_in_use(port):
                    return True
                logger.debug("Port %s busy with no visible listener (attempt %s)", port, attempt)
                self._sleep(t.port_release_wait_seconds)
                continue

            self._kill_all(pids, targets)
            self._sleep(t.sigkill_wait_seconds)
            try:
                if self.wait_for_port_release(port, targets, t.kill_release_retries):
                    return True
            except PortReboundError as exc:
                logger.warning("%s", exc)
                return False

        # Last resort: ask every inspector, not just the first that answers.
        fallback = self.locator.find_listening_pids_everywhere(port)
        if fallback:
            self._kill_all(fallback, targets)
            self._sleep(t.sigkill_wait_seconds)
        try:
            return self.wait_for_port_release(port, targets, t.port_release_retries)
        except PortReboundError as exc:
            logger.warning("%s", exc)
            return False


def kill_processes_on_port(port: int, *, timings: Optional[Timings] = None) -> bool:
    return PortTerminator(timings=timings).kill_processes_on_port(port)


__all__ = ["PortTerminator", "kill_processes_on_port", "manual_kill_hint"]
