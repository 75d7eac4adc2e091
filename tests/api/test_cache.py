"""Tests for the TTL cache behind the admin dashboard."""

from gigboard.api.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=30, clock=clock)
    cache.set("stats", {"total_jobs": 3})

    clock.now += 29
    assert cache.get("stats") == {"total_jobs": 3}

    clock.now += 1
    assert cache.get("stats") is None
    assert cache.get("stats") is None


def test_set_refreshes_timestamp():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("k", 1)
    clock.now += 8
    cache.set("k", 2)
    clock.now += 8
    assert cache.get("k") == 2


def test_clear():
    cache = TTLCache()
    cache.set("k", 1)
    cache.clear()
    assert cache.get("missing") is None
    assert cache.get("k") is None
