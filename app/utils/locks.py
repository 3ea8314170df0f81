# app/utils/locks.py
from __future__ import annotations
from typing import Optional
from redis.asyncio import Redis
import uuid, asyncio

# Delete only if we still own the lock (token match).
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

class RedisLock:
    """
    Simple, single-instance lock using SET NX EX.
    Prevents concurrent recommendation generation for the same user.
    """
    def __init__(self, redis: Redis, key: str, ttl: int = 30):
        self.redis = redis
        self.key = f"lock:{key}"
        self.ttl = ttl
        self._token: Optional[str] = None

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        ok = await self.redis.set(self.key, token, nx=True, ex=self.ttl)
        if ok:
            self._token = token
            return True
        return False

    async def release(self) -> None:
        if self._token is None:
            return
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None

    async def wait(self, timeout: int = 10) -> bool:
        """Wait for another worker to release the lock. False if it is still held at timeout."""
        for _ in range(timeout * 10):
            if not await self.redis.exists(self.key):
                return True
            await asyncio.sleep(0.1)
        return False


def generation_lock_factory(redis: Optional[Redis], ttl: int):
    """user_id -> RedisLock, or None when Redis is not configured."""
    if redis is None:
        return None
    return lambda user_id: RedisLock(redis, f"reco:gen:{user_id}", ttl=ttl)
