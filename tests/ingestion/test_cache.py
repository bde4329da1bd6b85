from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ingestion.services.cache import InMemoryBackend, RedisBackend, TieredCache, build_cache
from ingestion.settings import Settings


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _BrokenRedis:
    async def get(self, name):
        raise RedisConnectionError("down")

    async def set(self, name, value, *, ex=None):
        raise RedisConnectionError("down")

    async def delete(self, *names):
        raise RedisConnectionError("down")


class _DictRedis:
    def __init__(self) -> None:
        self.data = {}
        self.ttls = {}

    async def get(self, name):
        value = self.data.get(name)
        return value.encode("utf-8") if value is not None else None

    async def set(self, name, value, *, ex=None):
        self.data[name] = value
        self.ttls[name] = ex

    async def delete(self, *names):
        for name in names:
            self.data.pop(name, None)


@pytest.mark.asyncio
async def test_memory_backend_expires_entries():
    clock = _Clock()
    cache = TieredCache(InMemoryBackend(clock=clock))

    assert await cache.set("section", "world:full", {"a": 1}, 60)
    assert await cache.get("section", "world:full") == {"a": 1}

    clock.now += 61
    assert await cache.get("section", "world:full") is None


@pytest.mark.asyncio
async def test_memory_backend_evicts_least_recently_used():
    backend = InMemoryBackend(max_entries=2)
    cache = TieredCache(backend)

    await cache.set("source", "a", 1, 60)
    await cache.set("source", "b", 2, 60)
    assert await cache.get("source", "a") == 1  # touch a
    await cache.set("source", "c", 3, 60)

    assert len(backend) == 2
    assert await cache.get("source", "b") is None
    assert await cache.get("source", "a") == 1


@pytest.mark.asyncio
async def test_namespaces_do_not_collide():
    cache = TieredCache(InMemoryBackend(), prefix="t")

    await cache.set("source", "k", "raw", 60)
    await cache.set("enrichment", "k", "enriched", 60)

    assert await cache.get("source", "k") == "raw"
    assert await cache.get("enrichment", "k") == "enriched"
    assert cache.key("section", "k") == "t:section:k"
    with pytest.raises(ValueError):
        cache.key("bogus", "k")


@pytest.mark.asyncio
async def test_unavailable_backend_degrades_to_miss():
    cache = TieredCache(RedisBackend(_BrokenRedis()))

    assert await cache.get("section", "world:full") is None
    assert await cache.set("section", "world:full", {"a": 1}, 60) is False
    await cache.delete("section", "world:full")


@pytest.mark.asyncio
async def test_redis_backend_round_trips_json_with_ttl():
    client = _DictRedis()
    cache = TieredCache(RedisBackend(client))

    await cache.set("enrichment", "translate:abc", "번역", 300)

    assert await cache.get("enrichment", "translate:abc") == "번역"
    assert client.ttls["emark:enrichment:translate:abc"] == 300
    assert cache.backend_name == "redis"


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss():
    backend = InMemoryBackend()
    cache = TieredCache(backend)
    await backend.set(cache.key("section", "x"), "{not json", 60)

    assert await cache.get("section", "x") is None


@pytest.mark.asyncio
async def test_build_cache_without_redis_uses_memory():
    cache = await build_cache(Settings(redis_url=""))

    assert cache.backend_name == "memory"
