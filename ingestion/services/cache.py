"""Tiered cache: namespaced get/set-with-TTL over Redis or an in-process LRU.

Three namespaces share one backend: ``source`` (raw per-source results),
``enrichment`` (per-article translation/summary output) and ``section``
(assembled section payloads). Reads never raise; writes are best-effort.
"""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Protocol, Tuple

from redis.exceptions import RedisError

from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

NAMESPACES = ("source", "enrichment", "section")


class CacheUnavailable(Exception):
    """Backend could not serve the request (connection lost, timeout, ...)."""


class CacheBackend(Protocol):
    name: str

    async def get(self, key: str) -> Optional[str]: ...  # noqa: D401
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...  # noqa: D401
    async def delete(self, key: str) -> None: ...  # noqa: D401


class InMemoryBackend:
    """Bounded LRU with per-entry expiry, for local runs and Redis outages."""

    name = "memory"

    def __init__(self, max_entries: int = 2048, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()
        self._max = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (self._clock() + ttl_seconds, value)
        self._data.move_to_end(key)
        while len(self._data) > self._max:
            self._data.popitem(last=False)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class _AsyncRedisLike(Protocol):
    async def get(self, name: str) -> Any: ...
    async def set(self, name: str, value: str, *, ex: int | None = None) -> Any: ...
    async def delete(self, *names: str) -> Any: ...


class RedisBackend:
    """redis.asyncio 기반 백엔드. 모든 Redis 오류는 ``CacheUnavailable``로 변환."""

    name = "redis"

    def __init__(self, client: _AsyncRedisLike) -> None:
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as exc:
            raise CacheUnavailable(str(exc)) from exc


class TieredCache:
    """Namespaced JSON cache over a single backend."""

    def __init__(self, backend: CacheBackend, *, prefix: str = "emark") -> None:
        self.backend = backend
        self._prefix = prefix

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def key(self, namespace: str, key: str) -> str:
        if namespace not in NAMESPACES:
            raise ValueError(f"알 수 없는 캐시 네임스페이스: {namespace}")
        return f"{self._prefix}:{namespace}:{key}"

    async def get(self, namespace: str, key: str) -> Optional[Any]:
        full_key = self.key(namespace, key)
        try:
            raw = await self.backend.get(full_key)
        except CacheUnavailable as exc:
            logger.warning("cache.read_failed", extra={"key": full_key, "error": str(exc)})
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache.corrupt_entry", extra={"key": full_key})
            return None

    async def set(self, namespace: str, key: str, value: Any, ttl_seconds: int) -> bool:
        full_key = self.key(namespace, key)
        try:
            payload = json.dumps(value, ensure_ascii=False, default=str)
            await self.backend.set(full_key, payload, max(1, int(ttl_seconds)))
        except CacheUnavailable as exc:
            logger.warning("cache.write_failed", extra={"key": full_key, "error": str(exc)})
            return False
        except (TypeError, ValueError) as exc:
            logger.warning("cache.serialize_failed", extra={"key": full_key, "error": str(exc)})
            return False
        return True

    async def delete(self, namespace: str, key: str) -> None:
        full_key = self.key(namespace, key)
        try:
            await self.backend.delete(full_key)
        except CacheUnavailable as exc:
            logger.warning("cache.delete_failed", extra={"key": full_key, "error": str(exc)})


async def build_cache(settings: Optional[Settings] = None) -> TieredCache:
    """Redis가 응답하면 Redis, 아니면 인메모리 백엔드로 캐시를 만든다."""
    config = settings or get_settings()
    memory = InMemoryBackend(config.memory_cache_max_entries)
    if not config.redis_url:
        logger.info("cache.backend.memory", extra={"reason": "redis_url_unset"})
        return TieredCache(memory, prefix=config.cache_prefix)

    import redis.asyncio as aioredis

    client = aioredis.Redis.from_url(config.redis_url, socket_connect_timeout=0.2, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError):
        logger.info("cache.backend.memory", extra={"reason": "redis_ping_failed"})
        await client.aclose()
        return TieredCache(memory, prefix=config.cache_prefix)
    logger.info("cache.backend.redis", extra={"redis_url": config.redis_url})
    return TieredCache(RedisBackend(client), prefix=config.cache_prefix)
