"""Usage and favorites persistence for the Lumina command service

Two capabilities, both keyed by user id:
- an append-only log of UsageRecords with a time-windowed count, used for
  per-user rate limiting and analytics
- a table of named favorite command payloads

RedisUsageStore is the production backend. InMemoryUsageStore has the same
semantics for development and tests.
"""

import json
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Literal, Optional

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = structlog.get_logger()

# Usage keys expire after a week of inactivity
USAGE_RETENTION_SECONDS = 7 * 24 * 3600


class UsageRecord(BaseModel):
    """One request's outcome. Written once per request regardless of outcome."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: Literal["success", "failed"]
    latency_ms: int
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    model: Optional[str] = None
    error: Optional[str] = None


class UsageStore(ABC):
    """Persistence capability consumed by the rate limiter and handlers."""

    @abstractmethod
    async def append_usage(self, user_id: str, record: UsageRecord, at: float) -> None:
        """Append a usage record stamped with epoch seconds ``at``."""

    @abstractmethod
    async def count_since(self, user_id: str, since: float) -> int:
        """Count records strictly newer than ``since`` (epoch seconds)."""

    @abstractmethod
    async def get_favorites(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        """All favorites keyed by display name."""

    @abstractmethod
    async def save_favorite(self, user_id: str, name: str, payload: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete_favorite(self, user_id: str, name: str) -> bool:
        ...

    async def close(self):
        pass


class RedisUsageStore(UsageStore):
    """Redis backend.

    Usage lives in a sorted set per user scored by timestamp, so the window
    query is a single ZCOUNT. Favorites live in a hash per user.
    """

    def __init__(self, url: Optional[str] = None, client=None, retention_seconds: int = USAGE_RETENTION_SECONDS):
        """Initialize Redis client.

        Args:
            url: Redis URL (ignored when ``client`` is given)
            client: Pre-built redis.asyncio client
            retention_seconds: Expiry applied to a user's usage key on every write
        """
        if client is None:
            if not url:
                raise ValueError("Redis URL not configured. Set REDIS_URL.")
            client = redis.from_url(url, decode_responses=True)
        self.client = client
        self.retention_seconds = retention_seconds

    @staticmethod
    def _usage_key(user_id: str) -> str:
        return f"lumina:usage:{user_id}"

    @staticmethod
    def _favorites_key(user_id: str) -> str:
        return f"lumina:favorites:{user_id}"

    async def append_usage(self, user_id: str, record: UsageRecord, at: float) -> None:
        key = self._usage_key(user_id)
        member = json.dumps({"id": uuid.uuid4().hex, "timestamp": at, **record.model_dump(by_alias=True, exclude_none=True)})
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zadd(key, {member: at})
            pipe.expire(key, self.retention_seconds)
            await pipe.execute()

    async def count_since(self, user_id: str, since: float) -> int:
        # "(" makes the lower bound exclusive
        return await self.client.zcount(self._usage_key(user_id), f"({since}", "+inf")

    async def get_favorites(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        raw = await self.client.hgetall(self._favorites_key(user_id))
        favorites = {}
        for name, value in raw.items():
            try:
                favorites[name] = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("favorite_decode_failed", user_id=user_id, favorite=name)
        return favorites

    async def save_favorite(self, user_id: str, name: str, payload: Dict[str, Any]) -> None:
        await self.client.hset(self._favorites_key(user_id), name, json.dumps(payload))

    async def delete_favorite(self, user_id: str, name: str) -> bool:
        removed = await self.client.hdel(self._favorites_key(user_id), name)
        return bool(removed)

    async def close(self):
        await self.client.aclose()


class InMemoryUsageStore(UsageStore):
    """Process-local store. Not shared between workers."""

    def __init__(self):
        self.usage: Dict[str, List[tuple]] = defaultdict(list)
        self.favorites: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)

    async def append_usage(self, user_id: str, record: UsageRecord, at: float) -> None:
        self.usage[user_id].append((at, record))

    async def count_since(self, user_id: str, since: float) -> int:
        return sum(1 for at, _ in self.usage.get(user_id, []) if at > since)

    def records(self, user_id: str) -> List[UsageRecord]:
        return [record for _, record in self.usage.get(user_id, [])]

    async def get_favorites(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        return dict(self.favorites.get(user_id, {}))

    async def save_favorite(self, user_id: str, name: str, payload: Dict[str, Any]) -> None:
        self.favorites[user_id][name] = payload

    async def delete_favorite(self, user_id: str, name: str) -> bool:
        return self.favorites.get(user_id, {}).pop(name, None) is not None


def create_usage_store(redis_url: Optional[str]) -> UsageStore:
    """Build the configured backend."""
    if redis_url:
        logger.info("usage_store_backend", backend="redis")
        return RedisUsageStore(url=redis_url)
    logger.warning("usage_store_backend", backend="memory")
    return InMemoryUsageStore()
