"""Redis access used by shared storage."""
from .redis_client import (
    RedisClient,
    CacheMetrics,
    init_redis_client,
    get_redis_client,
    shutdown_redis_client,
)


__all__ = [
    "RedisClient",
    "CacheMetrics",
    "init_redis_client",
    "get_redis_client",
    "shutdown_redis_client",
]
