import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """
    Hands out one mutex per key (a shipment hash).
    Entries are reference counted and dropped once nobody holds or waits on
    them, so the registry does not grow with the number of shipments seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Process-wide registry shared by every service touching a shipment.
shipment_locks = KeyedLock()
