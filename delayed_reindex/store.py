"""Redis client construction shared by the scheduler, registrars and worker."""
from __future__ import annotations

from typing import Optional

import redis

from delayed_reindex.config import REDIS_SETTINGS
from delayed_reindex.utils import get_logger

logger = get_logger(__name__)


def get_redis_client(url: Optional[str] = None) -> redis.Redis:
    """Build a client; connection happens lazily on first command."""
    redis_url = url or str(REDIS_SETTINGS.get("url", "redis://localhost:6379/0"))
    timeout = float(REDIS_SETTINGS.get("socket_connect_timeout", 2.0))
    return redis.from_url(redis_url, socket_connect_timeout=timeout)


def check_redis_health(client: Optional[redis.Redis] = None) -> bool:
    """Check if Redis is reachable."""
    try:
        (client or get_redis_client()).ping()
        logger.info("Redis health check: Redis is available")
        return True
    except (redis.RedisError, ConnectionError) as e:
        logger.warning("Redis health check: Redis is unavailable", error=str(e))
        return False


__all__ = ["get_redis_client", "check_redis_health"]
