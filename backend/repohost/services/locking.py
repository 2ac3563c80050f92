"""
Per-repository locking.

Mutating operations on one repository (create, clone, delete, push) are
serialized; operations on different repositories never wait on each other.
Entries are created on first use and dropped once nobody holds or waits
for them.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class RepositoryLocks:
    """Registry of exclusive locks keyed by normalized repository identifier."""

    def __init__(self):
        # Guards the two dicts below, never held while waiting on a repo lock
        self._guard = threading.Lock()
        # identifier -> threading.Lock
        self._locks: Dict[str, threading.Lock] = {}
        # identifier -> number of holders plus waiters
        self._refcounts: Dict[str, int] = {}

    def _checkout(self, identifier: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(identifier)
            if lock is None:
                lock = threading.Lock()
                self._locks[identifier] = lock
            self._refcounts[identifier] = self._refcounts.get(identifier, 0) + 1
            return lock

    def _checkin(self, identifier: str) -> None:
        with self._guard:
            remaining = self._refcounts[identifier] - 1
            if remaining:
                self._refcounts[identifier] = remaining
            else:
                del self._refcounts[identifier]
                del self._locks[identifier]

    @contextmanager
    def hold(self, identifier: str) -> Iterator[None]:
        """Hold the exclusive lock for ``identifier`` for the duration of the block."""
        lock = self._checkout(identifier)
        try:
            with lock:
                yield
        finally:
            self._checkin(identifier)

    def is_locked(self, identifier: str) -> bool:
        with self._guard:
            lock = self._locks.get(identifier)
        return lock is not None and lock.locked()

    def tracked_count(self) -> int:
        """Number of identifiers that currently have a lock entry."""
        with self._guard:
            return len(self._locks)
