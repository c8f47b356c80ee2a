"""
In-process keyed locks

One ``threading.Lock`` per key (slot id, booking id), created on first
use and dropped once nobody holds or waits for it. Used as the per-key
critical section for in-memory stores and as per-booking exclusion
inside the reservation service.
"""

from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List
import threading


class KeyedLock:
    """Registry of per-key mutexes"""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable, timeout: float = -1) -> Iterator[None]:
        """
        Hold the lock for key for the duration of the block

        Raises TimeoutError if the lock cannot be acquired within timeout
        seconds (a negative timeout waits forever).
        """
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1

        lock = entry[0]
        try:
            if not lock.acquire(timeout=timeout):
                raise TimeoutError(f"Could not acquire lock for {key!r} within {timeout}s")
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
