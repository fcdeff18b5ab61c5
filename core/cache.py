"""
Read-through response cache for external lookups.

Caches RxNorm and catalog responses keyed by adapter name + normalized query so
repeated calculations for the same drug skip redundant network calls. Entries
expire by TTL and the least recently used entry is evicted when the cache is
full. A miss never affects correctness, only latency.

Instances are injectable; the module-level registry only supplies defaults for
adapters constructed without an explicit cache.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 15 * 60 * 1000
DEFAULT_MAX_SIZE = 1000


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry (monotonic seconds)."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResponseCache:
    """
    Thread-safe in-memory cache with TTL expiry and LRU eviction.

    The map and its recency order live in one ``OrderedDict`` guarded by a
    lock, so concurrent readers and writers never observe a half-updated order.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        ttl_ms: int = DEFAULT_TTL_MS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.enabled = enabled
        self.ttl_ms = ttl_ms
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def make_key(namespace: str, *parts: Any) -> str:
        """Build a key like ``fda:drug:lisinopril:100`` from normalized parts."""
        normalized = [str(p).strip().lower() for p in parts]
        return ":".join([namespace, *normalized])

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent, expired or disabled."""
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """Store *value*; evicts the least recently used entry when full."""
        if not self.enabled:
            return
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Cache evicted LRU entry {evicted}")
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl / 1000.0)
            self._entries.move_to_end(key)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Clear all entries. Returns count of entries cleared."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "max_size": self.max_size,
                "ttl_ms": self.ttl_ms,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "enabled": self.enabled,
            }


# Default caches, one per adapter namespace
_default_caches: Dict[str, ResponseCache] = {}
_registry_lock = threading.Lock()


def get_cache(name: str) -> ResponseCache:
    """Get (or lazily create from settings) the default cache for *name*."""
    with _registry_lock:
        cache = _default_caches.get(name)
        if cache is None:
            from .config import get_settings
            settings = get_settings()
            cache = ResponseCache(
                enabled=settings.cache_enabled,
                ttl_ms=settings.cache_ttl_ms,
                max_size=settings.cache_max_size,
            )
            _default_caches[name] = cache
        return cache


def set_cache(name: str, cache: ResponseCache) -> None:
    """Replace the default cache for *name* (useful in tests)."""
    with _registry_lock:
        _default_caches[name] = cache


def clear_all_caches() -> int:
    """Clear every default cache. Returns the number of entries dropped."""
    with _registry_lock:
        caches = list(_default_caches.values())
    return sum(cache.clear() for cache in caches)


def reset_caches() -> None:
    """Forget every default cache so the next get_cache() rebuilds from settings."""
    with _registry_lock:
        _default_caches.clear()
