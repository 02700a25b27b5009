from pricefeed.cache.ttl_cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_cache_expiry():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", {"v": 1}, ttl_seconds=1)
    assert cache.get("k") == {"v": 1}
    clock.now += 1.1
    assert cache.get("k") is None
    assert cache.metrics() == {"hits": 1, "misses": 1, "size": 0, "evictions": 0}


def test_cache_clear():
    cache = TTLCache()
    cache.set("k", [1, 2], ttl_seconds=60)
    cache.clear()
    assert cache.get("k") is None


def test_full_cache_drops_expired_before_live_entries():
    clock = FakeClock()
    cache = TTLCache(max_entries=3, clock=clock)
    cache.set("short", 1, ttl_seconds=1)
    cache.set("a", 2, ttl_seconds=60)
    cache.set("b", 3, ttl_seconds=60)
    clock.now += 5

    cache.set("c", 4, ttl_seconds=60)

    assert [cache.get(k) for k in ("a", "b", "c")] == [2, 3, 4]
    assert cache.metrics()["evictions"] == 0


def test_full_cache_evicts_oldest():
    cache = TTLCache(max_entries=2)
    cache.set("a", 1, ttl_seconds=60)
    cache.set("b", 2, ttl_seconds=60)
    cache.set("a", 10, ttl_seconds=60)
    cache.set("c", 3, ttl_seconds=60)

    assert cache.get("b") is None
    assert cache.get("a") == 10
    assert cache.get("c") == 3
    assert cache.metrics()["evictions"] == 1
