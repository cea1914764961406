"""Worker-side read contract for accumulated timechunks.

Given a resource type and a bucket timestamp, take every discovery index entry
scored <= that timestamp, remove them, read and delete their payload sets and
union the decoded ids. Earlier buckets are included so a job also covers buckets
whose own job failed or was never dispatched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import redis

from delayed_reindex.services import serializer
from delayed_reindex.services.timechunks import BucketKeyer
from delayed_reindex.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class DrainResult:
    resource_type: str
    at: int
    ids: list[str] = field(default_factory=list)
    fields: Optional[list[str]] = None  # None = all fields
    timechunk_keys: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.ids


def _as_str(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class TimechunkReader:
    def __init__(self, client: redis.Redis, *, keyer: Optional[BucketKeyer] = None) -> None:
        self._client = client
        self._keyer = keyer or BucketKeyer()

    def drain(self, resource_type: str, at: int) -> DrainResult:
        index_key = self._keyer.index_key(resource_type)
        with self._client.pipeline(transaction=True) as pipe:
            pipe.zrangebyscore(index_key, "-inf", at)
            pipe.zremrangebyscore(index_key, "-inf", at)
            raw_keys, _ = pipe.execute()

        keys = [_as_str(k) for k in raw_keys or []]
        if not keys:
            return DrainResult(resource_type=resource_type, at=at)

        with self._client.pipeline(transaction=True) as pipe:
            pipe.sunion(keys)
            pipe.delete(*keys)
            members, _ = pipe.execute()

        ids, fields = serializer.merge_payloads(members or [])
        logger.debug("Drained timechunks", resource_type=resource_type, at=at, timechunks=len(keys), ids=len(ids))
        return DrainResult(resource_type=resource_type, at=at, ids=ids, fields=fields, timechunk_keys=keys)


__all__ = ["TimechunkReader", "DrainResult"]
