#workload_engine\lifecycle\locks.py

"""Per-resource locks serializing deploy/delete of one logical resource."""

import threading
from contextlib import contextmanager
from typing import Dict


class ResourceLock:
    """Lock for a single container name, shared by everyone waiting on it."""

    def __init__(self, name: str):
        self.name = name
        self.lock = threading.Lock()
        self.holders = 0

    def __repr__(self) -> str:
        status = "locked" if self.lock.locked() else "free"
        return f"<ResourceLock(name={self.name}, {status}, holders={self.holders})>"


class ResourceLockRegistry:
    """
    Hands out one lock per resource name.

    Different resources never block each other. Entries are dropped once
    nobody holds or waits on them, so the registry does not grow with
    every resource ever deployed.
    """

    def __init__(self):
        self._locks: Dict[str, ResourceLock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, name: str):
        """Hold the lock for `name` for the duration of the block."""
        with self._guard:
            entry = self._locks.get(name)
            if entry is None:
                entry = self._locks[name] = ResourceLock(name)
            entry.holders += 1

        entry.lock.acquire()
        try:
            yield entry
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._locks.pop(name, None)

    def is_locked(self, name: str) -> bool:
        with self._guard:
            entry = self._locks.get(name)
            return entry is not None and entry.lock.locked()

    def tracked(self) -> int:
        """Number of names currently held or waited on."""
        with self._guard:
            return len(self._locks)

    def __repr__(self) -> str:
        return f"<ResourceLockRegistry(tracked={self.tracked()})>"
