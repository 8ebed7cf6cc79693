import logging
import threading
import time
from typing import Any, Callable, Hashable

from cachetools import TTLCache

from voting_portal.config import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


class ReadCache:
    """Short-lived cache for read snapshots.

    Any mutation calls :meth:`invalidate`. A value loaded while an
    invalidation happened is returned to its caller but not stored.
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, maxsize: int = 64, timer: Callable[[], float] = time.monotonic):
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.RLock()
        self._generation = 0
        self.hits = 0
        self.misses = 0

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._cache:
                self.hits += 1
                return self._cache[key]
            self.misses += 1
            generation = self._generation
        value = loader()
        with self._lock:
            if generation == self._generation:
                self._cache[key] = value
        return value

    def invalidate(self, key: Hashable = None):
        with self._lock:
            self._generation += 1
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)
        logger.debug(f"Read cache invalidated ({key or 'all'})")

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._cache


read_cache = ReadCache()
