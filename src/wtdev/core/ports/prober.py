"""Port-in-use detection with inspector fallback and a bind probe."""
from __future__ import annotations

import logging
import os
import socket
from typing import Any, Optional, Sequence

from wtdev.core.exceptions import PortValidationError

from wtdev.core.utils.subprocess import DEFAULT_TOOL_TIMEOUT_SECONDS

from .inspectors import InspectResult, PortInspector, default_probe_inspectors, first_conclusive

logger = logging.getLogger(__name__)


def validate_port(port: Any) -> int:
    """Return ``port`` as an int, raising when it is not a TCP port number."""
    if isinstance(port, bool) or not isinstance(port, int):
        raise PortValidationError(f"Invalid port number: {port!r}", context={"port": repr(port)})
    if port < 1 or port > 65535:
        raise PortValidationError(f"Invalid port number: {port} (must be 1-65535)", context={"port": port})
    return port


def is_port_available(port: int) -> bool:
    """Try to bind ``port`` on all interfaces. True means nothing holds it."""
    port = validate_port(port)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        if os.name == "posix":
            # Sockets in TIME_WAIT do not make a port busy for a new listener.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", port))
        sock.listen(1)
    except OSError:
        return False
    finally:
        sock.close()
    return True


class PortProber:
    """Answers ``is_port_in_use`` from the first conclusive inspector."""

    def __init__(
        self,
        inspectors: Optional[Sequence[PortInspector]] = None,
        *,
        timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
    ) -> None:
        self.inspectors = list(inspectors) if inspectors is not None else default_probe_inspectors(timeout)

    def is_port_in_use(self, port: int) -> bool:
        port = validate_port(port)
        result, source = first_conclusive(self.inspectors, port)
        if result is InspectResult.MATCH:
            logger.debug("Port %s in use (via %s)", port, source)
            return True
        if result is InspectResult.NO_MATCH:
            return False
        logger.warning(
            "No port inspection tool available for port %s; falling back to a bind probe", port
        )
        return not is_port_available(port)


_default_prober: Optional[PortProber] = None


def is_port_in_use(port: int) -> bool:
    """Module-level convenience using the platform's default inspector chain."""
    global _default_prober
    if _default_prober is None:
        _default_prober = PortProber()
    return _default_prober.is_port_in_use(port)


__all__ = ["PortProber", "is_port_available", "is_port_in_use", "validate_port"]
