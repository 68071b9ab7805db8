from __future__ import annotations

"""Subprocess helpers for the external tools wtdev shells out to.

This module provides:
- Bounded execution of inspection tools (ss, lsof, netstat, git)
- Process-group cleanup when a tool hangs past its timeout
- Popen keyword arguments for detached background children
- No shell=True anywhere (arguments are always passed as argv lists)
"""

import os
import shlex
import signal
import subprocess
from typing import Any, Sequence

DEFAULT_TOOL_TIMEOUT_SECONDS = 5.0


def _flatten_cmd(cmd: Any) -> Sequence[str]:
    if isinstance(cmd, (list, tuple)):
        return [str(p) for p in cmd]
    return shlex.split(str(cmd))


def detached_popen_kwargs() -> dict[str, Any]:
    """Popen kwargs that put the child in its own session / process group.

    A child started this way survives the exit of the invoking CLI process and
    does not receive the terminal's Ctrl-C.
    """
    if os.name == "posix":
        return {"start_new_session": True}
    if os.name == "nt":
        creationflags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", None)
        if isinstance(creationflags, int):
            return {"creationflags": creationflags}
    return {}


def _terminate_process_group(proc: subprocess.Popen[Any]) -> None:
    if proc.poll() is not None:
        return
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except OSError:
            try:
                proc.kill()
            except OSError:
                pass
    else:
        try:
            proc.kill()
        except OSError:
            pass
    try:
        proc.wait(timeout=0.2)
    except subprocess.TimeoutExpired:
        pass


def run_with_timeout(
    cmd: Any,
    *,
    timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
    cwd: str | os.PathLike[str] | None = None,
    env: dict[str, str] | None = None,
    check: bool = False,
) -> subprocess.CompletedProcess[str]:
    """Run ``cmd`` capturing text output, killing its process group on timeout.

    Raises:
        FileNotFoundError: When the executable is not installed.
        subprocess.TimeoutExpired: When the command exceeds ``timeout``.
        subprocess.CalledProcessError: When ``check`` is set and the exit code is non-zero.
    """
    argv = list(_flatten_cmd(cmd))
    if not argv:
        raise ValueError("command is empty after parsing")

    proc = subprocess.Popen(  # noqa: S603
        argv,
        cwd=str(cwd) if cwd is not None else None,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        **detached_popen_kwargs(),
    )
    try:
        stdout, stderr = proc.communicate(timeout=max(0.1, float(timeout)))
    except subprocess.TimeoutExpired as exc:
        _terminate_process_group(proc)
        try:
            stdout, stderr = proc.communicate(timeout=0.2)
        except (subprocess.TimeoutExpired, ValueError):
            stdout = getattr(exc, "output", None)
            stderr = getattr(exc, "stderr", None)
        raise subprocess.TimeoutExpired(argv, timeout, output=stdout, stderr=stderr) from None

    completed = subprocess.CompletedProcess(
        argv,
        proc.returncode if proc.returncode is not None else 0,
        stdout=stdout or "",
        stderr=stderr or "",
    )
    if check and completed.returncode != 0:
        raise subprocess.CalledProcessError(
            completed.returncode,
            argv,
            output=completed.stdout,
            stderr=completed.stderr,
        )
    return completed


__all__ = [
    "DEFAULT_TOOL_TIMEOUT_SECONDS",
    "detached_popen_kwargs",
    "run_with_timeout",
]
