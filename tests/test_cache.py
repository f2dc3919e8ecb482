"""Response cache and rate-limit counter backends."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.cache import MemoryCache, RedisCache


@pytest.mark.asyncio
async def test_memory_counter_resets_after_window():
    cache = MemoryCache()
    assert await cache.hit("rate:1.2.3.4", 60) == 1
    assert await cache.hit("rate:1.2.3.4", 60) == 2
    assert await cache.hit("rate:5.6.7.8", 60) == 1

    await cache.hit("rate:9.9.9.9", 0)
    assert await cache.hit("rate:9.9.9.9", 0) == 1


@pytest.mark.asyncio
async def test_memory_clear_prefix_only_drops_matching_keys():
    cache = MemoryCache()
    await cache.set_json("cache:/api/v1/job?", [{"id": 1}], 60)
    await cache.set_json("cache:/api/v1/job/1?", {"id": 1}, 60)
    await cache.set_json("cache:/api/v1/university?", [], 60)

    await cache.clear_prefix("cache:/api/v1/job")
    assert await cache.get_json("cache:/api/v1/job?") is None
    assert await cache.get_json("cache:/api/v1/job/1?") is None
    assert await cache.get_json("cache:/api/v1/university?") == []


@pytest.mark.asyncio
async def test_redis_failures_degrade_to_miss():
    cache = RedisCache("redis://localhost:6379", timeout=0.1)
    cache.client = AsyncMock()
    cache.client.get.side_effect = RedisConnectionError("down")
    cache.client.set.side_effect = RedisConnectionError("down")
    cache.client.incr.side_effect = RedisConnectionError("down")

    assert await cache.get_json("cache:/api/v1/job?") is None
    await cache.set_json("cache:/api/v1/job?", [], 60)
    assert await cache.hit("rate:1.2.3.4", 60) == 0


@pytest.mark.asyncio
async def test_redis_counter_sets_window_on_first_hit():
    cache = RedisCache("redis://localhost:6379")
    cache.client = AsyncMock()
    cache.client.incr.side_effect = [1, 2]

    assert await cache.hit("rate:1.2.3.4", 900) == 1
    assert await cache.hit("rate:1.2.3.4", 900) == 2
    cache.client.expire.assert_awaited_once_with("rate:1.2.3.4", 900)


@pytest.mark.asyncio
async def test_redis_corrupted_entry_is_a_miss():
    cache = RedisCache("redis://localhost:6379")
    cache.client = AsyncMock()
    cache.client.get.return_value = "{not json"
    assert await cache.get_json("cache:/api/v1/job?") is None
