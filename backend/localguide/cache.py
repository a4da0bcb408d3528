"""In-process TTL caches for geocoding and AI query enrichment."""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Any

from .metrics import cache_hits_total, cache_misses_total, cache_size
from .settings import settings


class CacheEntry:
    __slots__ = ("value", "expires_at", "hits")

    def __init__(self, value: Any, expires_at: float) -> None:
        self.value = value
        self.expires_at = expires_at
        self.hits = 0

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def increment_hits(self) -> None:
        self.hits += 1


class TTLCache:
    """Thread-safe LRU cache whose entries expire after a per-entry TTL."""

    def __init__(
        self,
        name: str,
        *,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.enabled = enabled
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired():
                if entry is not None:
                    del self._entries[key]
                self._misses += 1
                cache_misses_total.labels(cache_name=self.name).inc()
                return None
            self._entries.move_to_end(key)
            entry.increment_hits()
            self._hits += 1
            cache_hits_total.labels(cache_name=self.name).inc()
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if not self.enabled:
            return
        expires_at = time.time() + (ttl if ttl is not None else self.default_ttl)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = CacheEntry(value, expires_at)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1
            cache_size.labels(cache_name=self.name).set(len(self._entries))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            cache_size.labels(cache_name=self.name).set(0)

    def cleanup_expired(self) -> int:
        now = time.time()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            cache_size.labels(cache_name=self.name).set(len(self._entries))
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": (self._hits / total) if total else 0.0,
                "enabled": self.enabled,
            }


def make_cache_key(*args: Any) -> str:
    raw = "|".join(repr(arg) for arg in args)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


geocode_cache = TTLCache("geocode", max_size=500, default_ttl=settings.MAPS_CACHE_TTL_SECONDS)
reverse_geocode_cache = TTLCache(
    "reverse_geocode", max_size=1000, default_ttl=settings.MAPS_CACHE_TTL_SECONDS
)
query_enhancement_cache = TTLCache("query_enhancement", max_size=500, default_ttl=900)

_ALL_CACHES = (geocode_cache, reverse_geocode_cache, query_enhancement_cache)


def _normalize_query(query: str) -> str:
    return " ".join(query.strip().lower().split())


def cache_geocode(query: str, results: list[dict[str, Any]]) -> None:
    geocode_cache.set(make_cache_key("geocode", _normalize_query(query)), results)


def get_cached_geocode(query: str) -> list[dict[str, Any]] | None:
    return geocode_cache.get(make_cache_key("geocode", _normalize_query(query)))


def cache_reverse_geocode(lat: float, lng: float, result: dict[str, Any]) -> None:
    # ~100 m precision is plenty for a "you are here" label
    reverse_geocode_cache.set(make_cache_key("reverse", round(lat, 3), round(lng, 3)), result)


def get_cached_reverse_geocode(lat: float, lng: float) -> dict[str, Any] | None:
    return reverse_geocode_cache.get(make_cache_key("reverse", round(lat, 3), round(lng, 3)))


def cache_query_enhancement(query: str, result: dict[str, Any]) -> None:
    query_enhancement_cache.set(make_cache_key("enhance", _normalize_query(query)), result)


def get_cached_query_enhancement(query: str) -> dict[str, Any] | None:
    return query_enhancement_cache.get(make_cache_key("enhance", _normalize_query(query)))


def clear_all_caches() -> None:
    """Purge all in-process caches."""
    for cache in _ALL_CACHES:
        cache.clear()


def get_all_cache_stats() -> dict[str, dict]:
    return {cache.name: cache.get_stats() for cache in _ALL_CACHES}


__all__ = [
    "CacheEntry",
    "TTLCache",
    "cache_geocode",
    "cache_query_enhancement",
    "cache_reverse_geocode",
    "clear_all_caches",
    "get_all_cache_stats",
    "get_cached_geocode",
    "get_cached_query_enhancement",
    "get_cached_reverse_geocode",
    "make_cache_key",
]
