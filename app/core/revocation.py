import logging
import time
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import Settings
from app.core.errors import InternalServerError

logger = logging.getLogger(__name__)


def refresh_token_key(identity_id: str) -> str:
    return f"refresh_token:{identity_id}"


class RevocationStore(Protocol):
    """Key-value store holding the one live refresh token per user."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class RedisRevocationStore:
    """redis.asyncio backed store.

    The connection pool reconnects lazily: after a dropped connection the next
    command opens a new one. Failed commands are never retried, they surface
    as InternalServerError.
    """

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
            logger.error("Redis unreachable", extra={"redis_url": self.redis_url}, exc_info=e)
            raise _store_failure() from e
        logger.info("Connected to Redis for token management")

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except RedisError as e:
            logger.error("Redis GET failed", extra={"key": key}, exc_info=e)
            raise _store_failure() from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            logger.error("Redis SET failed", extra={"key": key}, exc_info=e)
            raise _store_failure() from e

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except RedisError as e:
            logger.error("Redis DEL failed", extra={"key": key}, exc_info=e)
            raise _store_failure() from e

    async def close(self) -> None:
        await self.client.aclose()


class MemoryRevocationStore:
    """In-process store with the same contract, for tests and local runs."""

    def __init__(self):
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = time.monotonic()
        self._purge(now)
        self._data[key] = (value, now + ttl_seconds)

    def _purge(self, now: float) -> None:
        for key in [k for k, (_, expires_at) in self._data.items() if expires_at <= now]:
            del self._data[key]

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def close(self) -> None:
        self._data.clear()


def _store_failure() -> InternalServerError:
    return InternalServerError(
        "ارتباط با سرویس توکن برقرار نشد",
        "Token store unavailable",
        retryable=False,
    )


def build_revocation_store(settings: Settings) -> RevocationStore:
    if settings.revocation_backend == "memory":
        logger.warning("Using in-memory revocation store; refresh tokens do not survive restarts")
        return MemoryRevocationStore()
    return RedisRevocationStore(settings.redis_url, timeout=settings.store_timeout)
