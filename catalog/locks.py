"""
Registry of per-key locks.

Used by the orchestrator so that at most one pipeline run per record identity
is in flight. Locks are reference counted and dropped from the registry once
no thread holds or waits on them, so idle keys do not accumulate.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLockRegistry:
    """Hands out one lock per key. Unrelated keys never contend."""

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Optional[str]) -> Iterator[None]:
        """
        Hold the lock for key for the duration of the block.

        A None key means the caller has no identity to serialize on yet;
        the block runs without locking.
        """
        if key is None:
            yield
            return

        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def is_locked(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    def __len__(self):
        with self._guard:
            return len(self._entries)
