"""Per-key locks for serialising work on one owner or instrument."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from ..errors import ConcurrentConflictError


class KeyedLocks:
    """
    Lazily created ``threading.Lock`` per key.

    With a timeout, ``hold`` gives up waiting and raises
    ConcurrentConflictError instead of blocking indefinitely.

    Locks are never evicted: keys are owners or instruments, so the map is
    bounded by that universe, and a key keeps one lock object for the life
    of the process.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.lock_for(key)
        acquired = lock.acquire(timeout=self.timeout) if self.timeout is not None else lock.acquire()
        if not acquired:
            raise ConcurrentConflictError(
                f"Timed out waiting for {key} after {self.timeout}s",
                resource=key,
            )
        try:
            yield
        finally:
            lock.release()
