"""Test caching implementation."""

import time

from backend.localguide.cache import (
    CacheEntry,
    TTLCache,
    cache_geocode,
    cache_query_enhancement,
    cache_reverse_geocode,
    clear_all_caches,
    get_all_cache_stats,
    get_cached_geocode,
    get_cached_query_enhancement,
    get_cached_reverse_geocode,
    make_cache_key,
)


class TestCacheEntry:
    def test_entry_expiration(self):
        assert CacheEntry("value", time.time() - 1).is_expired()
        assert not CacheEntry("value", time.time() + 10).is_expired()

    def test_entry_hit_tracking(self):
        entry = CacheEntry("value", time.time() + 10)
        entry.increment_hits()
        entry.increment_hits()
        assert entry.hits == 2


class TestTTLCache:
    def test_set_and_get(self):
        cache = TTLCache("test", max_size=10, default_ttl=60)
        cache.set("key1", "value1")
        assert cache.get("key1") == "value1"
        assert cache.get("missing") is None

    def test_entries_expire(self):
        cache = TTLCache("test", default_ttl=0.05)
        cache.set("key", "value")
        time.sleep(0.06)
        assert cache.get("key") is None
        assert cache.get_stats()["size"] == 0

    def test_custom_ttl_overrides_default(self):
        cache = TTLCache("test", default_ttl=0.05)
        cache.set("long", "value", ttl=60)
        time.sleep(0.06)
        assert cache.get("long") == "value"

    def test_lru_eviction(self):
        cache = TTLCache("test", max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get_stats()["evictions"] == 1

    def test_cleanup_expired(self):
        cache = TTLCache("test")
        cache.set("old", 1, ttl=-1)
        cache.set("fresh", 2, ttl=60)
        assert cache.cleanup_expired() == 1
        assert cache.get_stats()["size"] == 1

    def test_stats_track_hit_rate(self):
        cache = TTLCache("test")
        cache.set("k", "v")
        cache.get("k")
        cache.get("k")
        cache.get("nope")
        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 2 / 3

    def test_disabled_cache_stores_nothing(self):
        cache = TTLCache("test", enabled=False)
        cache.set("k", "v")
        assert cache.get("k") is None


class TestDomainCaches:
    def test_cache_key_is_stable(self):
        assert make_cache_key("a", 1) == make_cache_key("a", 1)
        assert make_cache_key("a", 1) != make_cache_key("a", 2)
        assert len(make_cache_key("x")) == 16

    def test_geocode_queries_are_normalised(self):
        cache_geocode("  Kadıköy   MODA ", [{"lat": 40.98, "lng": 29.02}])
        assert get_cached_geocode("kadıköy moda") == [{"lat": 40.98, "lng": 29.02}]

    def test_reverse_geocode_rounds_coordinates(self):
        cache_reverse_geocode(41.07812, 29.01034, {"city": "İstanbul"})
        assert get_cached_reverse_geocode(41.0784, 29.0098) == {"city": "İstanbul"}
        assert get_cached_reverse_geocode(41.09, 29.01) is None

    def test_query_enhancement_cache(self):
        cache_query_enhancement("Pizza", {"enhancedQuery": "pizza italyan", "suggestions": []})
        assert get_cached_query_enhancement("pizza")["enhancedQuery"] == "pizza italyan"

    def test_clear_all_caches(self):
        cache_geocode("ankara", [])
        cache_query_enhancement("kahve", {"enhancedQuery": "kahve", "suggestions": []})
        clear_all_caches()
        assert get_cached_geocode("ankara") is None
        assert get_cached_query_enhancement("kahve") is None
        assert set(get_all_cache_stats()) == {"geocode", "reverse_geocode", "query_enhancement"}
