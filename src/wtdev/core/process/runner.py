"""Run a wrapped dev server in the foreground.

SIGINT/SIGTERM received by wtdev are forwarded to the child. If the child is
still alive after the grace period it is killed, so Ctrl-C never leaves an
orphaned server bound to the worktree port.
"""
from __future__ import annotations

import logging
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

FORWARDED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM") if hasattr(signal, name)
)


class _ShutdownRequested(Exception):
    def __init__(self, signum: int) -> None:
        super().__init__(signum)
        self.signum = signum


def _stop_child(proc: subprocess.Popen[bytes], grace_seconds: float) -> None:
    try:
        proc.wait(timeout=max(0.0, grace_seconds))
        return
    except subprocess.TimeoutExpired:
        pass
    logger.warning("Dev server did not exit within %.1fs; killing PID %s", grace_seconds, proc.pid)
    try:
        proc.kill()
    except OSError:
        return
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        logger.warning("PID %s still running after SIGKILL", proc.pid)


def run_foreground(
    argv: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
    grace_seconds: float = 1.0,
) -> int:
    """Run ``argv`` with inherited stdio and return its exit code.

    A forwarded shutdown signal returns 0 once the child is gone. Only the
    first signal interrupts the wait; later ones are forwarded while the grace
    period runs out.
    """
    proc = subprocess.Popen(  # noqa: S603
        list(argv),
        cwd=str(cwd) if cwd is not None else None,
        env=env,
    )
    received: list[int] = []

    def _forward(signum: int, _frame: object) -> None:
        try:
            proc.send_signal(signum)
        except OSError:
            pass
        if not received:
            received.append(signum)
            raise _ShutdownRequested(signum)

    previous = {}
    for sig in FORWARDED_SIGNALS:
        try:
            previous[sig] = signal.signal(sig, _forward)
        except ValueError:
            # Not in the main thread; signals stay with the default handlers.
            break

    try:
        return proc.wait()
    except _ShutdownRequested as req:
        logger.debug("Forwarded signal %s to PID %s", req.signum, proc.pid)
        return 0
    finally:
        try:
            if proc.poll() is None:
                _stop_child(proc, grace_seconds)
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)


def tail_command(log_file: Path, lines: int = 50) -> list[str]:
    """Command that prints the last ``lines`` of ``log_file`` and keeps following it."""
    if sys.platform == "win32":
        return [
            "powershell",
            "-Command",
            f"Get-Content -Path \"{log_file}\" -Tail {lines} -Wait",
        ]
    return ["tail", "-f", "-n", str(lines), str(log_file)]


def follow_log(log_file: Path, lines: int = 50) -> int:
    """Follow ``log_file`` until interrupted."""
    return run_foreground(tail_command(log_file, lines), grace_seconds=0.5)


__all__ = ["FORWARDED_SIGNALS", "follow_log", "run_foreground", "tail_command"]
