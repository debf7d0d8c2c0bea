"""
In-process keyed locks.

Serializes critical sections that share a key (e.g. allocating the next child phase
under one parent key step, or replacing the members of one task). This only covers
a single worker process; multi-process deployments rely on the database transaction
and row locks taken alongside it.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLock:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                # Drop idle entries
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]
