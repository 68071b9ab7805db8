"""Listening-socket inspection strategies.

Each :class:`PortInspector` wraps one OS mechanism (``ss``, ``lsof``,
``netstat`` or psutil) and answers two questions about a TCP port:

- ``probe(port)``: is anything listening? (match / no match / unavailable)
- ``listening_pids(port)``: which PIDs are listening? (None when unknown)

Only sockets in the LISTEN state count. A process holding an established
connection *to* the port is a client and is never reported.

Parsing is done in plain functions over captured text so it can be tested
without the tools installed.
"""
from __future__ import annotations

import enum
import logging
import re
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

import psutil

from wtdev.core.utils.subprocess import DEFAULT_TOOL_TIMEOUT_SECONDS, run_with_timeout

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
IS_MACOS = sys.platform == "darwin"

_SS_PID = re.compile(r"pid=(\d+)")


class InspectResult(enum.Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Listener:
    """One listening socket on the inspected port."""

    local_address: str
    pid: Optional[int] = None


def _addr_has_port(address: str, port: int, *, separator: str = ":") -> bool:
    return address.endswith(f"{separator}{port}")


def _positive_int(raw: str) -> Optional[int]:
    try:
        value = int(raw, 10)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def parse_ss_output(text: str, port: int) -> list[Listener]:
    """Parse ``ss -tlnp`` output.

    Columns: State Recv-Q Send-Q Local-Address:Port Peer-Address:Port Process
    """
    listeners: list[Listener] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[0] in ("State", "Netid"):
            continue
        if parts[0] != "LISTEN" or not _addr_has_port(parts[3], port):
            continue
        pids = [int(m) for m in _SS_PID.findall(line)]
        if pids:
            listeners.extend(Listener(parts[3], pid) for pid in pids)
        else:
            listeners.append(Listener(parts[3]))
    return listeners


def parse_lsof_output(text: str, port: int) -> list[Listener]:
    """Parse ``lsof -Fp`` field output (one ``p<pid>`` line per process)."""
    listeners: list[Listener] = []
    seen: set[int] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith("p"):
            continue
        pid = _positive_int(line[1:])
        if pid is not None and pid not in seen:
            seen.add(pid)
            listeners.append(Listener(f"*:{port}", pid))
    return listeners


def parse_netstat_output(text: str, port: int, *, flavor: str = "linux") -> list[Listener]:
    """Parse ``netstat`` listing output.

    Flavors:
    - ``linux``   ``netstat -tlnp``: Proto Recv-Q Send-Q Local Foreign State PID/Program
    - ``windows`` ``netstat -ano -p TCP``: Proto Local Foreign State PID
    - ``darwin``  ``netstat -an -p tcp``: Proto Recv-Q Send-Q Local Foreign State;
      addresses use ``.`` before the port and no PID is shown
    """
    listeners: list[Listener] = []
    for line in text.splitlines():
        parts = line.split()
        if not parts or not parts[0].lower().startswith("tcp"):
            continue

        if flavor == "windows":
            if len(parts) < 5 or parts[3] != "LISTENING":
                continue
            if _addr_has_port(parts[1], port):
                listeners.append(Listener(parts[1], _positive_int(parts[4])))
            continue

        if len(parts) < 6 or parts[5] != "LISTEN":
            continue
        if flavor == "darwin":
            if _addr_has_port(parts[3], port, separator="."):
                listeners.append(Listener(parts[3]))
            continue

        if _addr_has_port(parts[3], port):
            pid = None
            if len(parts) > 6 and "/" in parts[6]:
                pid = _positive_int(parts[6].split("/", 1)[0])
            listeners.append(Listener(parts[3], pid))
    return listeners


class PortInspector(ABC):
    """One strategy for inspecting listening sockets."""

    name = "inspector"

    @abstractmethod
    def listeners(self, port: int) -> Optional[list[Listener]]:
        """Return listening sockets on ``port``, or None if the mechanism is unavailable."""

    def probe(self, port: int) -> InspectResult:
        found = self.listeners(port)
        if found is None:
            return InspectResult.UNAVAILABLE
        return InspectResult.MATCH if found else InspectResult.NO_MATCH

    def listening_pids(self, port: int) -> Optional[set[int]]:
        """PIDs listening on ``port``.

        Returns None when the mechanism is unavailable or a listener exists whose
        owner is not visible (e.g. another user's process without privileges).
        """
        found = self.listeners(port)
        if found is None:
            return None
        pids = {item.pid for item in found if item.pid is not None}
        if found and not pids:
            return None
        return pids


class _CommandInspector(PortInspector):
    def __init__(self, *, timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    def _run(self, argv: list[str]) -> Optional[subprocess.CompletedProcess[str]]:
        try:
            return run_with_timeout(argv, timeout=self.timeout)
        except FileNotFoundError:
            logger.debug("%s not installed", argv[0])
        except subprocess.TimeoutExpired:
            logger.debug("%s timed out after %.1fs", argv[0], self.timeout)
        except OSError as exc:
            logger.debug("%s failed: %s", argv[0], exc)
        return None


class SsInspector(_CommandInspector):
    name = "ss"

    def listeners(self, port: int) -> Optional[list[Listener]]:
        cp = self._run(["ss", "-tlnp"])
        if cp is None or cp.returncode != 0:
            return None
        return parse_ss_output(cp.stdout, port)


class LsofInspector(_CommandInspector):
    name = "lsof"

    def listeners(self, port: int) -> Optional[list[Listener]]:
        cp = self._run(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-Fp"])
        if cp is None:
            return None
        if cp.returncode != 0:
            # lsof exits 1 with no output when nothing matches.
            if cp.returncode == 1 and not cp.stdout.strip() and not cp.stderr.strip():
                return []
            return None
        return parse_lsof_output(cp.stdout, port)


class NetstatInspector(_CommandInspector):
    name = "netstat"

    def __init__(self, *, timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS, flavor: Optional[str] = None) -> None:
        super().__init__(timeout=timeout)
        if flavor is None:
            flavor = "windows" if IS_WINDOWS else "darwin" if IS_MACOS else "linux"
        self.flavor = flavor

    def _argv(self) -> list[str]:
        if self.flavor == "windows":
            return ["netstat", "-ano", "-p", "TCP"]
        if self.flavor == "darwin":
            return ["netstat", "-an", "-p", "tcp"]
        return ["netstat", "-tlnp"]

    def listeners(self, port: int) -> Optional[list[Listener]]:
        cp = self._run(self._argv())
        if cp is None or cp.returncode != 0:
            return None
        return parse_netstat_output(cp.stdout, port, flavor=self.flavor)


class PsutilInspector(PortInspector):
    name = "psutil"

    def listeners(self, port: int) -> Optional[list[Listener]]:
        try:
            conns = psutil.net_connections(kind="tcp")
        except (psutil.AccessDenied, psutil.Error, OSError) as exc:
            logger.debug("psutil.net_connections unavailable: %s", exc)
            return None
        found: list[Listener] = []
        for conn in conns:
            if conn.status != psutil.CONN_LISTEN or not conn.laddr:
                continue
            if conn.laddr.port != port:
                continue
            found.append(Listener(f"{conn.laddr.ip}:{conn.laddr.port}", conn.pid))
        return found


def default_probe_inspectors(timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS) -> list[PortInspector]:
    """Inspector order for the port-in-use prober."""
    if IS_WINDOWS:
        return [NetstatInspector(timeout=timeout)]
    return [SsInspector(timeout=timeout), LsofInspector(timeout=timeout), NetstatInspector(timeout=timeout)]


def default_locator_inspectors(timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS) -> list[PortInspector]:
    """Inspector order for the listening-PID locator."""
    if IS_WINDOWS:
        return [PsutilInspector(), NetstatInspector(timeout=timeout)]
    return [PsutilInspector(), SsInspector(timeout=timeout), LsofInspector(timeout=timeout)]


def first_conclusive(inspectors: Iterable[PortInspector], port: int) -> tuple[InspectResult, Optional[str]]:
    """Probe ``inspectors`` in order, stopping at the first non-UNAVAILABLE answer."""
    for inspector in inspectors:
        result = inspector.probe(port)
        if result is not InspectResult.UNAVAILABLE:
            return result, inspector.name
    return InspectResult.UNAVAILABLE, None


__all__ = [
    "InspectResult",
    "Listener",
    "LsofInspector",
    "NetstatInspector",
    "PortInspector",
    "PsutilInspector",
    "SsInspector",
    "default_locator_inspectors",
    "default_probe_inspectors",
    "first_conclusive",
    "parse_lsof_output",
    "parse_netstat_output",
    "parse_ss_output",
]
