"""
Per-session execution locks: a cycle that finds the session already being
processed skips it instead of waiting (no double order submission).
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class SessionLocks:
    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(session_id, threading.Lock())

    @contextmanager
    def hold(self, session_id: str) -> Iterator[bool]:
        """Yields True if the lock was taken, False if another cycle holds it."""
        lock = self._lock_for(session_id)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def is_locked(self, session_id: str) -> bool:
        return self._lock_for(session_id).locked()
