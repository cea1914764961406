"""Atomic merge-and-register step for timechunks.

Data structures in Redis:
 1. Set: <prefix>:<type>:<at> - serialized payloads accumulated for one bucket
 2. Sorted Set: <prefix>:<type>:timechunks - members=bucket keys, scores=bucket timestamp

One registration does, as a single indivisible unit:
  - SADD the payload into the bucket set and refresh its expiry.
  - If the bucket key is not yet in the sorted set: ZADD it with score=at, refresh
    the sorted set expiry and report True (newly registered). Otherwise report False.

The check and the insert span two keys, so a single-key primitive is not enough.
Two implementations:
  - LuaTimechunkRegistrar: server-side script (preferred).
  - WatchTimechunkRegistrar: optimistic WATCH/MULTI/EXEC for deployments that
    disable EVAL. Retries when another producer touched the sorted set in between.

Plain SADD is used for the payload: it is already a no-op for duplicates, and only
the True/False answer drives job scheduling.
"""
from __future__ import annotations

from typing import Protocol

import redis

from delayed_reindex.config import DELAYED_REINDEX_SETTINGS
from delayed_reindex.errors import ConfigurationError, RegistrationContentionError
from delayed_reindex.utils import get_logger

logger = get_logger(__name__)

REGISTER_TIMECHUNK_SCRIPT = """
local timechunk_key = KEYS[1]
local timechunks_key = KEYS[2]
local payload = ARGV[1]
local at = ARGV[2]
local ttl = tonumber(ARGV[3])

redis.call('sadd', timechunk_key, payload)
redis.call('expire', timechunk_key, ttl)

if not redis.call('zrank', timechunks_key, timechunk_key) then
    redis.call('zadd', timechunks_key, at, timechunk_key)
    redis.call('expire', timechunks_key, ttl)
    return 1
end

return 0
"""


class TimechunkRegistrar(Protocol):
    def register(self, bucket_key: str, index_key: str, payload: str, at: int, ttl: int) -> bool: ...


class LuaTimechunkRegistrar:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        # Script objects use EVALSHA and reload on NOSCRIPT transparently
        self._script = client.register_script(REGISTER_TIMECHUNK_SCRIPT)

    def register(self, bucket_key: str, index_key: str, payload: str, at: int, ttl: int) -> bool:
        result = self._script(keys=[bucket_key, index_key], args=[payload, at, ttl])
        registered = bool(result)
        logger.debug("Timechunk merged", bucket_key=bucket_key, registered=registered)
        return registered


class WatchTimechunkRegistrar:
    def __init__(self, client: redis.Redis, *, max_retries: int | None = None) -> None:
        self._client = client
        self._max_retries = int(
            max_retries if max_retries is not None else DELAYED_REINDEX_SETTINGS["registrar_max_watch_retries"]
        )
        if self._max_retries < 1:
            raise ConfigurationError(f"registrar_max_watch_retries must be >= 1, got {self._max_retries}")

    def register(self, bucket_key: str, index_key: str, payload: str, at: int, ttl: int) -> bool:
        with self._client.pipeline() as pipe:
            for attempt in range(1, self._max_retries + 1):
                try:
                    pipe.watch(index_key)
                    already_registered = pipe.zrank(index_key, bucket_key) is not None
                    pipe.multi()
                    pipe.sadd(bucket_key, payload)
                    pipe.expire(bucket_key, ttl)
                    if not already_registered:
                        pipe.zadd(index_key, {bucket_key: at})
                        pipe.expire(index_key, ttl)
                    pipe.execute()
                except redis.WatchError:
                    logger.debug("Timechunk index changed during registration, retrying", bucket_key=bucket_key, attempt=attempt)
                    continue
                registered = not already_registered
                logger.debug("Timechunk merged", bucket_key=bucket_key, registered=registered, attempt=attempt)
                return registered
        logger.warning("Timechunk registration gave up", bucket_key=bucket_key, attempts=self._max_retries)
        raise RegistrationContentionError(bucket_key, self._max_retries)


def create_registrar(client: redis.Redis, strategy: str | None = None) -> TimechunkRegistrar:
    """Build the registrar named by ``strategy`` (defaults to settings)."""
    strategy = strategy or str(DELAYED_REINDEX_SETTINGS.get("registrar", "lua"))
    if strategy == "lua":
        return LuaTimechunkRegistrar(client)
    if strategy == "watch":
        return WatchTimechunkRegistrar(client)
    raise ConfigurationError(f"Unknown registrar strategy '{strategy}'")


__all__ = [
    "REGISTER_TIMECHUNK_SCRIPT",
    "TimechunkRegistrar",
    "LuaTimechunkRegistrar",
    "WatchTimechunkRegistrar",
    "create_registrar",
]
