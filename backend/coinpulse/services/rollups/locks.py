"""
In-process writer serialisation per machine. Counters, daily and hourly rows of one machine are
only rewritten by the holder of that machine's lock; different machines proceed in parallel.
Cross-process safety comes from the unique keys, upserts and the counters version column.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from coinpulse.core.errors import ConflictError

logger = logging.getLogger(__name__)

LOCK_WAIT_SECONDS = 10.0


class KeyedLocks:
    """One lock per key, created on demand and dropped when nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [lock, holders_and_waiters]

    @contextmanager
    def hold(self, key: Hashable, timeout: float = LOCK_WAIT_SECONDS) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        acquired = False
        try:
            acquired = entry[0].acquire(timeout=timeout)
            if not acquired:
                logger.warning("Timed out after %ss waiting for writer lock %s", timeout, key)
                raise ConflictError("Timed out waiting for concurrent update", key=str(key))
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_machine_locks = KeyedLocks()


def machine_lock(machine_id: int, timeout: float = LOCK_WAIT_SECONDS):
    """Serialise counter/rollup writers of one machine."""
    return _machine_locks.hold(("machine", machine_id), timeout=timeout)
