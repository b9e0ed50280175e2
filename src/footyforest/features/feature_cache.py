"""
Time-bounded cache for team feature groups.

Entries expire `ttl_seconds` after they were written; new match data does NOT
invalidate them, so a cached value may be stale for up to one TTL window.
Reads and writes are lock-protected but not transactional.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from footyforest.config import FEATURE_CACHE_MAX_ENTRIES, FEATURE_CACHE_TTL_SECONDS
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)


class FeatureCache:
    """
    Thread-safe TTL cache with least-recently-used eviction.

    Parameters
    ----------
    ttl_seconds : float
        Validity window of an entry, measured from the time it was written.
    max_entries : int
        Once exceeded, the least recently used entry is evicted.
    clock : Callable[[], float]
        Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = FEATURE_CACHE_TTL_SECONDS,
        max_entries: int = FEATURE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            written_at, value = entry
            if self._clock() - written_at >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Feature cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
                "max_entries": self.max_entries,
            }
