"""Process helpers: liveness, listening-PID lookup, port teardown, foreground runs."""
from __future__ import annotations

from .inspector import is_process_alive, kill_pid
from .locator import ProcessLocator, find_listening_pids
from .runner import follow_log, run_foreground, tail_command
from .terminator import PortTerminator, kill_processes_on_port, manual_kill_hint

__all__ = [
    "PortTerminator",
    "ProcessLocator",
    "find_listening_pids",
    "follow_log",
    "is_process_alive",
    "kill_pid",
    "kill_processes_on_port",
    "manual_kill_hint",
    "run_foreground",
    "tail_command",
]
