# app/domain/repositories/reco_cache_repo.py
from __future__ import annotations
from typing import Awaitable, Callable, Optional, Type, TypeVar
import logging

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.utils.cache import cache_delete, cache_get, cache_set

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

class RecoCacheRepo:
    """
    Read-through cache for recommendation read views, stored in Redis as JSON.
    No business logic here, just cache access (get_or_fetch/invalidate).
    Redis is optional: with no client, or when Redis errors, every call goes to the producer.
    """
    def __init__(self, redis: Optional[Redis], prefix: str = "reco"):
        self.redis = redis
        self.prefix = prefix

    def key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    async def get_or_fetch(
        self,
        name: str,
        producer: Callable[[], Awaitable[M]],
        ttl: int,
        model: Type[M],
    ) -> M:
        if self.redis is None:
            return await producer()

        key = self.key(name)
        try:
            raw = await cache_get(self.redis, key)
        except RedisError as e:
            logger.warning("reco_cache get error key=%s err=%s", key, e)
            raw = None

        if raw is not None:
            try:
                value = model.model_validate(raw)
                logger.debug("reco_cache hit key=%s", key)
                return value
            except ValueError as e:
                logger.warning("reco_cache decode error key=%s err=%s", key, e)

        logger.debug("reco_cache miss key=%s", key)
        value = await producer()
        try:
            await cache_set(self.redis, key, value.model_dump(mode="json"), ex=ttl)
        except RedisError as e:
            logger.warning("reco_cache set error key=%s err=%s", key, e)
        return value

    async def invalidate(self, name: str) -> int:
        """Remove one cached entry. Returns the number of keys deleted (0 or 1)."""
        if self.redis is None:
            return 0
        key = self.key(name)
        try:
            return await cache_delete(self.redis, key)
        except RedisError as e:
            logger.warning("reco_cache delete error key=%s err=%s", key, e)
            return 0
