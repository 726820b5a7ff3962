"""Tests for the key-value store backends."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from muse.cache.store import MemoryStore, RedisStore, create_store


@pytest.mark.asyncio
async def test_memory_store_roundtrip(kv_store):
    await kv_store.set("a", {"x": [1, 2]})
    assert await kv_store.get("a") == {"x": [1, 2]}
    assert await kv_store.get("missing") is None


@pytest.mark.asyncio
async def test_memory_store_returns_copies(kv_store):
    value = {"items": [1]}
    await kv_store.set("a", value)
    value["items"].append(2)
    fetched = await kv_store.get("a")
    fetched["items"].append(3)
    assert await kv_store.get("a") == {"items": [1]}


@pytest.mark.asyncio
async def test_memory_store_ttl(kv_store, clock):
    await kv_store.set("a", 1, ttl=10)
    clock.advance(9)
    assert await kv_store.get("a") == 1
    clock.advance(1)
    assert await kv_store.get("a") is None


@pytest.mark.asyncio
async def test_memory_store_keys_and_delete_pattern(kv_store, clock):
    await kv_store.set("vector:b1:aaa", 1)
    await kv_store.set("vector:b1:bbb", 2)
    await kv_store.set("vector:b2:ccc", 3)
    await kv_store.set("vector:b1:old", 4, ttl=1)
    clock.advance(2)

    assert sorted(await kv_store.keys("vector:b1:*")) == ["vector:b1:aaa", "vector:b1:bbb"]
    assert await kv_store.delete_pattern("vector:b1:*") == 2
    assert await kv_store.keys("vector:*") == ["vector:b2:ccc"]


@pytest.mark.asyncio
async def test_memory_store_delete_counts(kv_store):
    await kv_store.set("a", 1)
    assert await kv_store.delete("a", "b") == 1


@pytest.mark.asyncio
async def test_redis_store_uses_client():
    client = MagicMock()
    client.get = AsyncMock(return_value='{"k": "値"}')
    client.set = AsyncMock()
    client.delete = AsyncMock(return_value=2)
    client.aclose = AsyncMock()

    store = RedisStore(client=client)
    assert await store.get("x") == {"k": "値"}

    await store.set("x", {"k": 1}, ttl=60)
    client.set.assert_awaited_once_with("x", '{"k": 1}', ex=60)

    assert await store.delete("a", "b") == 2
    assert await store.delete() == 0

    await store.close()
    client.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_store_scans_keys():
    async def scan_iter(match):
        for key in ("cag:context:a", "cag:context:b"):
            yield key

    client = MagicMock()
    client.scan_iter = scan_iter
    store = RedisStore(client=client)
    assert await store.keys("cag:context:*") == ["cag:context:a", "cag:context:b"]


def test_create_store_memory():
    assert isinstance(create_store("memory"), MemoryStore)
