from __future__ import annotations

from typing import Any, Dict, Mapping

_BANNER = "━" * 59


class WtDevError(Exception):
    """Base exception for wtdev."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class PortValidationError(WtDevError, ValueError):
    """Raised when a port number or port pool is invalid."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        WtDevError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class ConfigError(WtDevError, ValueError):
    """Raised when the devServer configuration is invalid."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        WtDevError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class ProjectRootNotFoundError(WtDevError, FileNotFoundError):
    """Raised when no project manifest is found walking up from a directory."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        WtDevError.__init__(self, message, context=context)
        FileNotFoundError.__init__(self, message)


class PortExhaustedError(WtDevError, RuntimeError):
    """Raised when every pool port is already claimed by an earlier worktree."""

    def __init__(self, worktree_count: int, port_count: int) -> None:
        self.worktree_count = worktree_count
        self.port_count = port_count
        suggested = max(port_count + 1, worktree_count)
        message = (
            f"\n{_BANNER}\n"
            "ERROR: Port pool exhausted\n"
            f"{_BANNER}\n\n"
            f"You have {worktree_count} worktrees but only {port_count} ports configured.\n\n"
            "To fix this, increase maxPorts in your package.json:\n\n"
            '  "devServer": {\n'
            f'    "maxPorts": {suggested}\n'
            "  }\n\n"
            "Or override with PORT environment variable (bypasses collision detection):\n"
            "  PORT=3000 wtdev dev\n"
            f"{_BANNER}\n"
        )
        WtDevError.__init__(
            self,
            message,
            context={"worktree_count": worktree_count, "port_count": port_count},
        )
        RuntimeError.__init__(self, message)


class PortReboundError(WtDevError, RuntimeError):
    """Raised when a port is claimed by an unrelated process during cleanup."""

    def __init__(self, port: int, pid: int) -> None:
        self.port = port
        self.pid = pid
        message = f"Port {port} re-bound by different process (PID {pid}) during cleanup"
        WtDevError.__init__(self, message, context={"port": port, "pid": pid})
        RuntimeError.__init__(self, message)


class ServiceStartError(WtDevError, RuntimeError):
    """Raised when the shared Inngest dev server cannot be spawned."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        WtDevError.__init__(self, message, context=context)
        RuntimeError.__init__(self, message)


__all__ = [
    "WtDevError",
    "PortValidationError",
    "ConfigError",
    "ProjectRootNotFoundError",
    "PortExhaustedError",
    "PortReboundError",
    "ServiceStartError",
]
