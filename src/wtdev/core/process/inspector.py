"""Process liveness checks and forceful termination by PID."""
from __future__ import annotations

import errno
import logging
import os
import signal

import psutil

logger = logging.getLogger(__name__)


def is_process_alive(pid: int) -> bool:
    """Check if a process is alive by PID without signalling it.

    - Prefer ``psutil.pid_exists``
    - Fallback to ``os.kill(pid, 0)`` where supported
    """
    if pid <= 0:
        return False
    try:
        return psutil.pid_exists(pid)
    except (psutil.Error, OSError):
        pass

    try:
        os.kill(pid, 0)
        return True
    except PermissionError:
        # Permission denied implies the process exists but is protected
        return True
    except OSError:
        return False


def kill_pid(pid: int) -> bool:
    """Send SIGKILL (TerminateProcess on Windows) to ``pid``.

    Returns False if the process was already gone. Other errors propagate.
    """
    if pid <= 0:
        return False
    sig = getattr(signal, "SIGKILL", signal.SIGTERM)
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    except OSError as exc:
        if exc.errno == errno.ESRCH:
            return False
        raise
    logger.debug("Sent SIGKILL to PID %s", pid)
    return True


__all__ = ["is_process_alive", "kill_pid"]
