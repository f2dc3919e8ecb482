import json
import logging
import time
from typing import Any, Awaitable, Callable, Protocol

import redis.asyncio as aioredis
from fastapi import Request
from redis.exceptions import RedisError

from app.core.config import Settings
from app.core.errors import RateLimitError

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"
RATE_PREFIX = "rate:"


class Cache(Protocol):
    """Hot, disposable state: GET response bodies and rate-limit counters.

    Losing it never changes correctness, so backend failures are logged and
    treated as a miss instead of failing the request.
    """

    async def get_json(self, key: str) -> Any | None: ...

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def clear_prefix(self, prefix: str) -> None: ...

    async def hit(self, key: str, window_seconds: int) -> int: ...

    async def close(self) -> None: ...


class RedisCache:
    def __init__(self, redis_url: str, *, timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            retry_on_timeout=False,
        )

    async def ping(self) -> None:
        try:
            await self.client.ping()
        except RedisError as e:
            logger.error("Redis cache unreachable", extra={"redis_url": self.redis_url}, exc_info=e)
            return
        logger.info("Redis cache initialized")

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning("Cache GET failed", extra={"key": key}, exc_info=e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            # corrupted entry, treat as a miss
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, json.dumps(value, ensure_ascii=False), ex=ttl_seconds)
        except RedisError as e:
            logger.warning("Cache SET failed", extra={"key": key}, exc_info=e)

    async def clear_prefix(self, prefix: str) -> None:
        try:
            async for key in self.client.scan_iter(match=f"{prefix}*"):
                await self.client.delete(key)
        except RedisError as e:
            logger.warning("Cache clear failed", extra={"prefix": prefix}, exc_info=e)

    async def hit(self, key: str, window_seconds: int) -> int:
        """Count one request in a fixed window; 0 when the counter is unavailable."""
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, window_seconds)
            return count
        except RedisError as e:
            logger.warning("Rate limit counter failed", extra={"key": key}, exc_info=e)
            return 0

    async def close(self) -> None:
        await self.client.aclose()


class MemoryCache:
    def __init__(self):
        self._data: dict[str, tuple[Any, float]] = {}

    def _live(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    async def get_json(self, key: str) -> Any | None:
        raw = self._live(key)
        return None if raw is None else json.loads(raw)

    def _purge(self, now: float) -> None:
        for key in [k for k, (_, expires_at) in self._data.items() if expires_at <= now]:
            del self._data[key]

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = time.monotonic()
        self._purge(now)
        self._data[key] = (json.dumps(value, ensure_ascii=False), now + ttl_seconds)

    async def clear_prefix(self, prefix: str) -> None:
        for key in [k for k in self._data if k.startswith(prefix)]:
            del self._data[key]

    async def hit(self, key: str, window_seconds: int) -> int:
        count = self._live(key)
        if count is None:
            now = time.monotonic()
            self._purge(now)
            self._data[key] = (1, now + window_seconds)
            return 1
        _, expires_at = self._data[key]
        self._data[key] = (count + 1, expires_at)
        return count + 1

    async def close(self) -> None:
        self._data.clear()


def build_cache(settings: Settings) -> Cache:
    if settings.cache_backend == "memory":
        return MemoryCache()
    return RedisCache(settings.redis_url, timeout=settings.store_timeout)


def get_cache(request: Request) -> Cache:
    return request.app.state.cache


def response_cache_key(request: Request) -> str:
    return f"{CACHE_PREFIX}{request.url.path}?{request.url.query}"


async def cached_response(
    request: Request,
    ttl_seconds: int,
    load: Callable[[], Awaitable[Any]],
) -> Any:
    """Serve a GET body from the cache, or build it with ``load`` and store it.

    ``load`` must return JSON-ready data. Errors raised by ``load`` are never cached.
    """
    cache = get_cache(request)
    key = response_cache_key(request)
    body = await cache.get_json(key)
    if body is not None:
        logger.debug("Cache hit", extra={"key": key})
        return body
    body = await load()
    await cache.set_json(key, body, ttl_seconds)
    return body


async def invalidate_responses(request: Request) -> None:
    """Drop cached bodies for the collection the request addresses."""
    await get_cache(request).clear_prefix(f"{CACHE_PREFIX}{request.url.path}")


async def enforce_rate_limit(request: Request) -> None:
    settings: Settings = request.app.state.settings
    client = request.client.host if request.client else "anonymous"
    window = settings.rate_limit_window_minutes * 60

    count = await get_cache(request).hit(f"{RATE_PREFIX}{client}", window)
    if count > settings.rate_limit_max:
        logger.warning("Rate limit exceeded", extra={"client": client, "path": request.url.path})
        raise RateLimitError(retry_after=window)
