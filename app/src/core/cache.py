"""
Advisory Redis cache.

Reads that fail return None so callers recompute from the database; writes
and deletes that fail are logged and ignored. The cache can only make data
stale, never wrong.
"""

import json
import logging
from typing import Any, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from src.core.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "daily-issue"


def subscriber_count_key(subject_id: int) -> str:
    return f"{settings.ENVIRONMENT}:{KEY_PREFIX}:subscriber-count:{subject_id}"


def issue_summaries_key(subject_id: int, page: int, per_page: int) -> str:
    return f"{settings.ENVIRONMENT}:{KEY_PREFIX}:issue-summaries:{subject_id}:{page}:{per_page}"


class Cache:
    """Thin JSON wrapper around an asyncio Redis client."""

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable cache entry {key}")
            return None

    async def setex(self, key: str, ttl_seconds: int, value: Any) -> None:
        if self.client is None:
            return
        try:
            await self.client.setex(key, ttl_seconds, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        if self.client is None:
            return
        try:
            await self.client.delete(key)
        except RedisError as e:
            logger.warning(f"Failed to invalidate cache key {key}: {e}")


_cache: Optional[Cache] = None


def get_cache() -> Cache:
    """Process-wide cache; disabled when REDIS_URL is empty."""
    global _cache
    if _cache is None:
        if settings.REDIS_URL:
            _cache = Cache(aioredis.from_url(settings.REDIS_URL, decode_responses=True))
        else:
            _cache = Cache(None)
    return _cache
