"""Tests for TTLCache."""

from vpsdash.cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_get_missing_returns_none():
    cache: TTLCache[str, int] = TTLCache(10, FakeClock())
    assert cache.get("x") is None


def test_value_available_before_ttl():
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(10, clock)
    cache.set("x", 1)

    clock.now = 9.9
    assert cache.get("x") == 1


def test_value_expires_lazily_at_ttl():
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(10, clock)
    cache.set("x", 1)

    clock.now = 10.0
    assert len(cache) == 1  # Not swept until read
    assert cache.get("x") is None
    assert len(cache) == 0


def test_set_refreshes_timestamp():
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(10, clock)
    cache.set("x", 1)
    clock.now = 8
    cache.set("x", 2)
    clock.now = 15
    assert cache.get("x") == 2


def test_clear():
    cache: TTLCache[str, int] = TTLCache(10, FakeClock())
    cache.set("x", 1)
    cache.clear()
    assert cache.get("x") is None
