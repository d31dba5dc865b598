"""Redis-backed leader lock for work that only one replica should do"""

import uuid
from typing import Optional
import redis.asyncio as redis
from redis.asyncio import Redis

from applyflow.core.config import settings
from applyflow.core.logging import get_logger

logger = get_logger(__name__)

# Delete the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisLeaderLock:
    """
    Short-lived exclusive leases keyed by name

    A lease is taken with SET NX PX and expires on its own, so a replica that
    dies while holding it blocks the others for at most one TTL.
    """

    def __init__(self, redis_url: str = None, prefix: str = "applyflow", client: Optional[Redis] = None):
        self.redis_url = redis_url or settings.REDIS_URL
        self.prefix = prefix
        self.token = uuid.uuid4().hex
        self._redis: Optional[Redis] = client

    async def connect(self) -> None:
        """Establish Redis connection"""
        if self._redis is not None:
            return
        try:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True
            )
            await self._redis.ping()
            logger.info("Connected to Redis for leader locks")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis:
            await self._redis.close()
            self._redis = None
            logger.info("Disconnected from Redis leader locks")

    def key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    async def acquire(self, name: str, ttl_seconds: float) -> bool:
        """
        Try to take the lease

        Args:
            name: Lock name, e.g. "schedule:cleanup_old_jobs"
            ttl_seconds: Lease length

        Returns:
            True if this process now holds the lease
        """
        if self._redis is None:
            await self.connect()
        ttl_ms = max(int(ttl_seconds * 1000), 1)
        acquired = await self._redis.set(self.key(name), self.token, nx=True, px=ttl_ms)
        return bool(acquired)

    async def release(self, name: str) -> bool:
        """
        Give up the lease if we still hold it

        Returns:
            True if the key was deleted
        """
        if self._redis is None:
            return False
        deleted = await self._redis.eval(_RELEASE_SCRIPT, 1, self.key(name), self.token)
        return bool(deleted)
