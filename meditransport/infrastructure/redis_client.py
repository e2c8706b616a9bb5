"""Redis async connection pool (used by the redis broadcast backend)."""

from typing import Optional

import redis.asyncio as aioredis

from meditransport.config import settings

_pool: Optional[aioredis.ConnectionPool] = None


def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.db_command_timeout_seconds,
            socket_connect_timeout=settings.db_connect_timeout_seconds,
        )
    return aioredis.Redis(connection_pool=_pool)
