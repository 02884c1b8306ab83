import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.cache import Cache, issue_summaries_key, subscriber_count_key
from src.core.config import settings


def test_keys_are_namespaced_by_environment():
    assert subscriber_count_key(3) == f"{settings.ENVIRONMENT}:daily-issue:subscriber-count:3"
    assert issue_summaries_key(3, 2, 20) == f"{settings.ENVIRONMENT}:daily-issue:issue-summaries:3:2:20"


class TestCache:
    """JSON wrapper over an asyncio Redis client."""

    @pytest.mark.asyncio
    async def test_disabled_cache_is_a_no_op(self):
        cache = Cache(None)

        await cache.setex("k", 10, 1)
        await cache.delete("k")

        assert cache.enabled is False
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_values_round_trip_as_json(self):
        client = AsyncMock()
        client.get.return_value = json.dumps({"count": 3})
        cache = Cache(client)

        await cache.setex("k", 60, {"count": 3})
        value = await cache.get("k")

        client.setex.assert_awaited_once_with("k", 60, '{"count": 3}')
        assert value == {"count": 3}

    @pytest.mark.asyncio
    async def test_read_errors_fall_back_to_none(self):
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("connection refused")
        cache = Cache(client)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_write_and_delete_errors_are_swallowed(self):
        client = AsyncMock()
        client.setex.side_effect = RedisConnectionError("connection refused")
        client.delete.side_effect = RedisConnectionError("connection refused")
        cache = Cache(client)

        await cache.setex("k", 60, 1)
        await cache.delete("k")

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_ignored(self):
        client = AsyncMock()
        client.get.return_value = "{not json"
        cache = Cache(client)

        assert await cache.get("k") is None
