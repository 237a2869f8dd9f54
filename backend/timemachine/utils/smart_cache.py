"""
Caching for the market data gateway.

Historical bars never change once a day has closed, so they are kept for an
hour; quotes only for a few seconds so the live feed stays live. Search
results sit in between. The kind of an entry is the prefix of its key, as
produced by ``cache_key``.

Features:
- Per-kind time to live, overridable per entry
- Bounded size, least recently used entries go first
- Thread-safe operations
- Cache hit/miss statistics
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)

DEFAULT_DURATIONS = {
    'quote': 15,
    'historical': 3600,
    'intraday': 300,
    'search': 600,
}
FALLBACK_DURATION = 60

class CacheEntry(NamedTuple):
    stored_at: float
    ttl: float
    data: Any

class SmartCache:
    """
    TTL + LRU cache keyed by endpoint, symbol and parameters
    """

    def __init__(
        self,
        max_size: int = 500,
        durations: Optional[Dict[str, float]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.durations = {**DEFAULT_DURATIONS, **(durations or {})}
        self.max_size = max_size
        self._clock = clock
        self.lock = threading.RLock()
        self.stats = {'hits': 0, 'misses': 0, 'evictions': 0}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Cached data for ``key``, or None when missing or expired"""
        with self.lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats['misses'] += 1
                return None

            if self._clock() - entry.stored_at >= entry.ttl:
                del self._entries[key]
                self.stats['misses'] += 1
                logger.debug(f"Cache expired for key: {key}")
                return None

            self._entries.move_to_end(key)
            self.stats['hits'] += 1
            logger.debug(f"Cache hit for key: {key}")
            return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        with self.lock:
            if ttl is None:
                ttl = self.durations.get(key.split(':', 1)[0], FALLBACK_DURATION)
            self._entries[key] = CacheEntry(self._clock(), ttl, data)
            self._entries.move_to_end(key)
            logger.debug(f"Cache set for key: {key}, ttl: {ttl}s")

            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self.stats['evictions'] += 1
                logger.debug(f"Cache evicted key: {evicted}")

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """
        Drop entries whose key contains ``pattern``, or everything.

        Returns:
            Number of invalidated entries
        """
        with self.lock:
            keys = [key for key in self._entries if pattern is None or pattern in key]
            for key in keys:
                del self._entries[key]
            logger.info(f"Cache invalidated for pattern '{pattern}': {len(keys)} entries")
            return len(keys)

    def get_stats(self) -> Dict[str, Any]:
        with self.lock:
            requests = self.stats['hits'] + self.stats['misses']
            return {
                'cache_size': len(self._entries),
                'max_size': self.max_size,
                'hit_rate': f"{self.stats['hits'] / max(1, requests) * 100:.1f}%",
                'total_requests': requests,
                **self.stats,
            }

def cache_key(endpoint: str, symbol: Optional[str] = None, **params) -> str:
    """
    Build a key like ``historical:AAPL:end=2020-01-31&start=2020-01-01``
    """
    parts = [endpoint]
    if symbol:
        parts.append(symbol.upper())
    if params:
        parts.append("&".join(f"{name}={value}" for name, value in sorted(params.items())))
    return ":".join(parts)
