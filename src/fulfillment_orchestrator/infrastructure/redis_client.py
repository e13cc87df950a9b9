"""Redis client for the sweep lock and order draft storage.

Usage:
    from fulfillment_orchestrator.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    await redis.set("key", "value", ex=3600)
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

from fulfillment_orchestrator.config import get_settings
from fulfillment_orchestrator.logging_config import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Distributed Lock ---

# Delete the key only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock:
    """Single-holder lock with an expiry, for one sweep at a time across workers.

    The key expires after ``ttl_seconds`` so a crashed holder cannot block
    future sweeps forever.
    """

    def __init__(self, redis: aioredis.Redis, key: str, ttl_seconds: int) -> None:
        self._redis = redis
        self._key = key
        self._ttl_ms = ttl_seconds * 1000
        self._token: str | None = None

    @property
    def key(self) -> str:
        return self._key

    async def acquire(self) -> bool:
        """Try to take the lock without waiting. Returns False if someone holds it."""
        token = uuid.uuid4().hex
        acquired = await self._redis.set(self._key, token, nx=True, px=self._ttl_ms)
        if acquired:
            self._token = token
            logger.debug("redis.lock_acquired", key=self._key)
            return True
        logger.info("redis.lock_busy", key=self._key)
        return False

    async def release(self) -> None:
        if self._token is None:
            return
        await self._redis.eval(_RELEASE_SCRIPT, 1, self._key, self._token)
        logger.debug("redis.lock_released", key=self._key)
        self._token = None


def sweep_lock() -> RedisLock:
    """Build the lock that guards the reminder sweep."""
    settings = get_settings()
    return RedisLock(
        get_redis(),
        key=settings.sweep_lock_key,
        ttl_seconds=settings.sweep_lock_ttl_seconds,
    )
