"""Singleton coordination state shared by every wtdev invocation on a machine.

The shared-service manager never touches the filesystem directly; it talks to
a :class:`SingletonStore`. :class:`FileSingletonStore` backs keys with small
plain-text files in a state directory:

- ``<prefix>.pid``  PID of the running shared service
- ``<prefix>.lock`` start lock, created exclusively, content = owner PID
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from wtdev.core.utils.io import ensure_directory, remove_file, write_text

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "wt-dev-inngest"
PID_KEY = "pid"
LOCK_KEY = "lock"

_SAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def sanitize_key(key: str) -> str:
    s = _SAFE_KEY_CHARS.sub("_", str(key).strip()).strip("._-")
    return s or "state"


class SingletonStore(ABC):
    """Key/value store for machine-wide singleton markers."""

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def write_atomic(self, key: str, value: str) -> None:
        """Replace the value so readers never observe a partial write."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the key. Deleting an absent key is not an error."""

    @abstractmethod
    def try_acquire_exclusive(self, key: str, value: str) -> bool:
        """Create the key only if absent. Returns False when it already exists."""

    def delete_if(self, key: str, expected: str) -> bool:
        """Remove the key only while it still holds ``expected``."""
        current = self.read(key)
        if current is None or current.strip() != expected.strip():
            return False
        self.delete(key)
        return True

    def read_int(self, key: str) -> int | None:
        raw = self.read(key)
        if raw is None:
            return None
        try:
            value = int(raw.strip(), 10)
        except ValueError:
            return None
        return value if value > 0 else None


class FileSingletonStore(SingletonStore):
    def __init__(self, directory: Path, prefix: str = DEFAULT_PREFIX) -> None:
        self.directory = Path(directory)
        self.prefix = sanitize_key(prefix)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{self.prefix}.{sanitize_key(key)}"

    def read(self, key: str) -> str | None:
        try:
            return self.path_for(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.debug("Could not read %s: %s", self.path_for(key), exc)
            return None

    def write_atomic(self, key: str, value: str) -> None:
        ensure_directory(self.directory)
        write_text(self.path_for(key), value)

    def delete(self, key: str) -> None:
        remove_file(self.path_for(key))

    def try_acquire_exclusive(self, key: str, value: str) -> bool:
        ensure_directory(self.directory)
        path = self.path_for(key)
        try:
            fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(value)
        return True


@contextmanager
def start_lock(
    store: SingletonStore,
    key: str = LOCK_KEY,
    *,
    owner_alive: Callable[[int], bool] | None = None,
) -> Iterator[bool]:
    """Hold the start lock for the duration of the ``with`` block.

    Yields True when the lock was acquired. The lock is released on every exit
    path, but only by the invocation that acquired it. With ``owner_alive``, a
    lock whose recorded owner PID is dead is broken and acquisition retried once.
    """
    acquired = store.try_acquire_exclusive(key, str(os.getpid()))
    if not acquired and owner_alive is not None and break_abandoned_lock(store, key, owner_alive):
        acquired = store.try_acquire_exclusive(key, str(os.getpid()))
    try:
        yield acquired
    finally:
        if acquired:
            store.delete(key)


def lock_is_abandoned(store: SingletonStore, key: str, owner_alive: Callable[[int], bool]) -> bool:
    """True when the lock exists and records an owner PID that is no longer alive."""
    owner = store.read_int(key)
    return owner is not None and not owner_alive(owner)


def break_abandoned_lock(store: SingletonStore, key: str, owner_alive: Callable[[int], bool]) -> bool:
    if not lock_is_abandoned(store, key, owner_alive):
        return False
    owner = store.read_int(key)
    logger.warning("Removing abandoned start lock held by dead PID %s", owner)
    return store.delete_if(key, str(owner))


__all__ = [
    "DEFAULT_PREFIX",
    "FileSingletonStore",
    "LOCK_KEY",
    "PID_KEY",
    "SingletonStore",
    "break_abandoned_lock",
    "lock_is_abandoned",
    "sanitize_key",
    "start_lock",
]
