# File: civiceye/core/locks.py
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List, Optional

from civiceye.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One mutex per key (issue id), created on demand and dropped when idle.

    Serialises the read-modify-write paths of a single issue inside this
    process. Waiting longer than ``timeout`` seconds raises
    StoreUnavailableError instead of blocking the request forever.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[Hashable, List] = {}

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[None]:
        lock = self._checkout(key)
        wait = self.timeout if timeout is None else timeout
        if not lock.acquire(timeout=wait):
            self._release(key)
            logger.warning("timed out after %.1fs waiting for lock on %r", wait, key)
            raise StoreUnavailableError("Issue is busy, please retry")
        try:
            yield
        finally:
            lock.release()
            self._release(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
