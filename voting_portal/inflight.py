import logging
import threading
from contextlib import contextmanager

from voting_portal.errors import Conflict

logger = logging.getLogger(__name__)


class InFlightGuard:
    """At most one outstanding request per action key.

    This only stops double-clicks and duplicate tabs from piling up
    requests; correctness of the vote count rests on the unique index.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active = set()

    @contextmanager
    def claim(self, key: str):
        with self._lock:
            if key in self._active:
                logger.warning(f"Rejected duplicate in-flight request: {key}")
                raise Conflict("A submission for this action is already in progress.")
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)

    def is_active(self, key: str) -> bool:
        with self._lock:
            return key in self._active


class KeyedLock:
    """Serializes work per key inside this process; waiters block instead of failing."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries = {}

    @contextmanager
    def hold(self, key):
        with self._lock:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self):
        with self._lock:
            return len(self._entries)


guard = InFlightGuard()
