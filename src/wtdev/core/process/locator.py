"""Find the PIDs *listening* on a TCP port."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from wtdev.core.ports.inspectors import PortInspector, default_locator_inspectors
from wtdev.core.ports.prober import validate_port
from wtdev.core.utils.subprocess import DEFAULT_TOOL_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class ProcessLocator:
    """Returns listening PIDs from the first inspector that can see them.

    Connected clients are never included: every inspector filters on the
    LISTEN state before extracting PIDs.
    """

    def __init__(
        self,
        inspectors: Optional[Sequence[PortInspector]] = None,
        *,
        timeout: float = DEFAULT_TOOL_TIMEOUT_SECONDS,
    ) -> None:
        self.inspectors = list(inspectors) if inspectors is not None else default_locator_inspectors(timeout)

    def find_listening_pids(self, port: int) -> set[int]:
        port = validate_port(port)
        for inspector in self.inspectors:
            pids = inspector.listening_pids(port)
            if pids is not None:
                logger.debug("Listening PIDs on %s via %s: %s", port, inspector.name, sorted(pids))
                return pids
        return set()

    def find_listening_pids_everywhere(self, port: int) -> set[int]:
        """Union of every inspector's answer. Used by the last-resort kill pass."""
        port = validate_port(port)
        found: set[int] = set()
        for inspector in self.inspectors:
            found |= inspector.listening_pids(port) or set()
        return found


_default_locator: Optional[ProcessLocator] = None


def find_listening_pids(port: int) -> set[int]:
    global _default_locator
    if _default_locator is None:
        _default_locator = ProcessLocator()
    return _default_locator.find_listening_pids(port)


__all__ = ["ProcessLocator", "find_listening_pids"]
