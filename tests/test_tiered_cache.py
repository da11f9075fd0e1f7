"""Tests for the tiered cache, its local level, regions and the wildcard matcher."""

import pytest

from memory_hub.core.circuit_breaker import CircuitBreaker, CircuitState
from memory_hub.infrastructure.cache import CacheRegion, LocalCache, TieredCache, wildcard_match
from memory_hub.infrastructure.cache.wildcard import escape_redis_literal, to_redis_pattern


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.parametrize(
    ("pattern", "key", "expected"),
    [
        ("list:*", "list:{}", True),
        ("list:*", "search:list:", False),
        ("list:*", "list:", True),
        ("*", "", True),
        ("memory:?", "memory:1", True),
        ("memory:?", "memory:12", False),
        ("a*b*c", "aXXbYYc", True),
        ("a*b*c", "aXXbYY", False),
        ("search:*limit*", 'search:{"limit":10}', True),
        ("exact", "exact", True),
        ("exact", "exactly", False),
        ("[x]", "[x]", True),
    ],
)
def test_wildcard_match(pattern, key, expected):
    assert wildcard_match(pattern, key) is expected


def test_redis_pattern_escaping():
    assert escape_redis_literal("ns*[1]:") == "ns\\*\\[1\\]:"
    assert to_redis_pattern("list:[a]*?") == "list:\\[a\\]*?"


def test_local_cache_expiry_and_eviction():
    clock = FakeClock()
    local = LocalCache(max_size=2, clock=clock)

    local.set("a", 1, ttl_seconds=10)
    local.set("b", 2, ttl_seconds=10)
    local.set("c", 3, ttl_seconds=10)
    assert local.get("a") is None
    assert local.get("b") == 2

    clock.now += 11
    assert local.get("b") is None
    assert "c" not in local


def test_local_cache_reinsert_moves_to_back():
    local = LocalCache(max_size=2)
    local.set("a", 1, 60)
    local.set("b", 2, 60)
    local.set("a", 10, 60)
    local.set("c", 3, 60)

    assert local.get("a") == 10
    assert local.get("b") is None


def test_injected_local_level_is_kept_even_when_empty():
    local = LocalCache(max_size=2, clock=FakeClock())
    cache = TieredCache(None, local=local, max_size=100)

    assert cache.local is local
    assert cache.local.max_size == 2


@pytest.mark.asyncio
async def test_get_prefers_shared_level(cache, redis):
    await cache.set("k", {"v": 1}, 30)
    cache.local.clear()

    assert await cache.get("k") == {"v": 1}
    assert redis.ttls["test:k"] == 30
    assert cache.stats["shared_hits"] == 1


@pytest.mark.asyncio
async def test_local_level_serves_when_shared_down(cache, redis):
    await cache.set("k", [1, 2, 3], 30)
    redis.down = True

    assert await cache.get("k") == [1, 2, 3]
    assert cache.stats["local_hits"] == 1
    assert cache.stats["shared_errors"] == 1


@pytest.mark.asyncio
async def test_set_writes_local_even_when_shared_fails(cache, redis):
    redis.down = True
    await cache.set("k", "v")

    assert cache.local.get("k") == "v"


@pytest.mark.asyncio
async def test_miss_everywhere(cache):
    assert await cache.get("nothing") is None
    assert cache.stats["misses"] == 1


@pytest.mark.asyncio
async def test_delete_both_levels(cache, redis):
    await cache.set("k", 1)
    await cache.delete("k")

    assert "test:k" not in redis.data
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_invalidate_pattern_only_touches_matching_keys(cache, redis):
    for key in ("list:a", "list:b", "search:a", "memory:1"):
        await cache.set(key, key)

    removed = await cache.invalidate_pattern("list:*")

    assert removed == 2
    assert sorted(cache.local.keys()) == ["memory:1", "search:a"]
    assert sorted(redis.data) == ["test:memory:1", "test:search:a"]


@pytest.mark.asyncio
async def test_invalidate_pattern_is_correct_locally_when_shared_down(cache, redis):
    await cache.set("list:a", 1)
    await cache.set("search:a", 2)
    redis.down = True

    await cache.invalidate_pattern("list:*")

    assert await cache.get("list:a") is None
    assert await cache.get("search:a") == 2


@pytest.mark.asyncio
async def test_namespace_isolation(redis):
    ours = TieredCache(redis, namespace="ours")
    theirs = TieredCache(redis, namespace="theirs")
    await ours.set("list:x", 1)
    await theirs.set("list:x", 2)

    await ours.flush()

    assert list(redis.data) == ["theirs:list:x"]


@pytest.mark.asyncio
async def test_breaker_stops_calling_shared_level(redis):
    breaker = CircuitBreaker("shared_cache", failure_threshold=2, recovery_timeout=60)
    cache = TieredCache(redis, namespace="test", breaker=breaker)
    redis.down = True

    await cache.get("a")
    await cache.get("b")
    calls = redis.calls
    await cache.get("c")

    assert breaker.state == CircuitState.OPEN
    assert redis.calls == calls


@pytest.mark.asyncio
async def test_disabled_cache_is_inert(redis):
    cache = TieredCache(redis, enabled=False)
    await cache.set("k", 1)

    assert await cache.get("k") is None
    assert redis.data == {}


@pytest.mark.asyncio
async def test_local_only_cache():
    cache = TieredCache(None, namespace="test")
    await cache.set("list:a", 1)
    await cache.invalidate_prefix("list:")

    assert await cache.get("list:a") is None
    await cache.close()


@pytest.mark.asyncio
async def test_region_clear_is_scoped(cache):
    lists = CacheRegion(cache, "list", 60)
    searches = CacheRegion(cache, "search", 300)
    await lists.set("q1", 1)
    await searches.set("q1", 2)

    await lists.clear()

    assert await lists.get("q1") is None
    assert await searches.get("q1") == 2


@pytest.mark.asyncio
async def test_close_releases_shared_connection(cache, redis):
    await cache.close()
    assert redis.closed
