"""
Outbound collaborators of the results service: the shared result cache and
the client push channel. The service depends only on the protocols; the
Redis implementations are wired in by the worker entrypoint.
"""
from __future__ import annotations

import json
from typing import Any, Optional, Protocol

from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


class ResultCache(Protocol):
    async def set(self, key: str, value: str, ttl_s: int) -> None: ...

    async def try_get(self, key: str) -> Optional[str]: ...


class PushPublisher(Protocol):
    async def publish(self, event_name: str, payload: dict[str, Any]) -> None: ...


class RedisResultCache:
    """Result cache kept as a JSON string under a Redis key with expiry."""

    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def set(self, key: str, value: str, ttl_s: int) -> None:
        await self._redis.set_json(key, value, ttl_s)

    async def try_get(self, key: str) -> Optional[str]:
        return await self._redis.get_json(key)


class RedisPushPublisher:
    """Publishes push events on the Redis channel read by the client gateway."""

    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        receivers = await self._redis.publish_event(event_name, json.dumps(payload, default=str))
        logger.debug("push_event_published", push_event=event_name, receivers=receivers)
