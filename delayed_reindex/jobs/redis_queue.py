"""Redis-backed named delay queue.

Features:
- Ready jobs are served FIFO.
- Optional delay (scheduled execution time) per job, absolute or relative.
- Persistence across process restarts; shared by every producer and worker.
- Thread-safe operations.

Data structures in Redis (per queue name):
 1. List: <prefix>:<name>:ready - serialized jobs that are ready to execute (FIFO)
 2. Sorted Set: <prefix>:<name>:scheduled - scores=ready_at_ts, members=serialized jobs

On enqueue:
  - If ready_at <= now -> push to ready list else scheduled sorted set.
On dequeue:
  - Promote any scheduled items whose ready_at <= now to ready list. A member is
    pushed only by the worker whose ZREM removed it, so concurrent workers do not
    promote the same job twice.
  - Pop from ready list, blocking with timeout if requested.

Transport errors (redis.RedisError) propagate to the caller: a job that cannot be
persisted must not be silently kept in process memory.
"""
from __future__ import annotations

import json
import threading
from typing import Any, Optional

import redis

from delayed_reindex.config import QUEUE_SETTINGS
from delayed_reindex.jobs.queue import QueueItem, resolve_ready_at
from delayed_reindex.jobs.reindex_job import ReindexJob
from delayed_reindex.store import check_redis_health
from delayed_reindex.utils import get_logger
from delayed_reindex.utils.time import Clock, system_clock

logger = get_logger(__name__)


class RedisQueue:
    def __init__(
        self,
        name: str = "default",
        *,
        client: Optional[redis.Redis] = None,
        clock: Clock = system_clock,
    ) -> None:
        self.name = name
        self._clock = clock
        self._redis_url: str = str(QUEUE_SETTINGS.get("redis_url", "redis://localhost:6379/0"))
        key_prefix = str(QUEUE_SETTINGS.get("redis_key_prefix", "delayed_reindex:queue"))
        self._ready_key = f"{key_prefix}:{name}:ready"
        self._scheduled_key = f"{key_prefix}:{name}:scheduled"
        self._health_check_timeout = float(QUEUE_SETTINGS.get("redis_health_check_timeout", 2.0))
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))
        self._lock = threading.RLock()
        self._seq_counter = 0
        self._shutdown = False
        self._redis_client: redis.Redis = client if client is not None else redis.from_url(
            self._redis_url, socket_connect_timeout=self._health_check_timeout
        )

    def health_check(self) -> bool:
        """Ping Redis; used to pick a backend, never to swallow enqueue errors."""
        return check_redis_health(self._redis_client)

    # ----------------------------- serialization ----------------------------- #
    def _serialize_job(self, item: QueueItem) -> str:
        if isinstance(item.job, ReindexJob):
            job_dict = item.job.descriptor()
        else:
            job_dict = item.job.__dict__ if hasattr(item.job, "__dict__") else {"data": str(item.job)}
        job_data = {
            "job": job_dict,
            "job_type": item.job.__class__.__name__,
            "queue": item.queue,
            "enqueued_at": item.enqueued_at,
            "ready_at": item.ready_at,
            "seq": item.seq,
        }
        return json.dumps(job_data)

    def _deserialize_job(self, serialized_job: str | bytes) -> QueueItem:
        if isinstance(serialized_job, bytes):
            serialized_job = serialized_job.decode("utf-8")
        job_data = json.loads(serialized_job)
        job_type = job_data.get("job_type")
        job_dict = job_data.get("job", {})
        if job_type == "ReindexJob":
            job: Any = ReindexJob(**job_dict)
        else:
            logger.warning("Unknown job type encountered", job_type=job_type)
            job = job_dict
        now_ts = self._clock()
        return QueueItem(
            job=job,
            queue=job_data.get("queue", self.name),
            enqueued_at=job_data.get("enqueued_at", now_ts),
            ready_at=job_data.get("ready_at", now_ts),
            seq=job_data.get("seq", 0),
        )

    def _promote_scheduled(self) -> int:
        due = self._redis_client.zrangebyscore(self._scheduled_key, "-inf", self._clock())
        promoted = 0
        for member in due or []:
            if self._redis_client.zrem(self._scheduled_key, member):
                self._redis_client.rpush(self._ready_key, member)
                promoted += 1
        if promoted:
            logger.debug("Promoted scheduled jobs to ready queue", queue=self.name, count=promoted)
        return promoted

    # ----------------------------- public API ----------------------------- #
    def enqueue(
        self,
        job: Any,
        *,
        delay_seconds: float = 0.0,
        run_at: Optional[float] = None,
    ) -> QueueItem:
        with self._lock:
            if self._shutdown:
                raise RuntimeError("Queue shutdown")
            now_ts = self._clock()
            ready_at_ts = resolve_ready_at(now_ts, delay_seconds, run_at)
            self._seq_counter += 1
            item = QueueItem(
                job=job,
                queue=self.name,
                enqueued_at=now_ts,
                ready_at=ready_at_ts,
                seq=self._seq_counter,
            )
            serialized_job = self._serialize_job(item)
            if ready_at_ts <= now_ts:
                self._redis_client.rpush(self._ready_key, serialized_job)
            else:
                self._redis_client.zadd(self._scheduled_key, {serialized_job: ready_at_ts})
            queue_depth = self.depth()
            if queue_depth >= self._warn_depth:
                logger.warning("Queue depth warning", queue=self.name, depth=queue_depth)
            return item

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any:
        """Pop the next ready job; None when nothing is ready (non-blocking) or on timeout."""
        if self._shutdown and self.depth() == 0:
            return None
        self._promote_scheduled()
        if block:
            # BLPOP takes whole seconds and treats 0 as "wait forever"
            wait = 0 if timeout is None else max(1, int(timeout))
            result = self._redis_client.blpop([self._ready_key], timeout=wait)
            if result is None:
                return None
            _, serialized_job = result
        else:
            serialized_job = self._redis_client.lpop(self._ready_key)
            if serialized_job is None:
                return None
        return self._deserialize_job(serialized_job).job

    def shutdown(self) -> None:
        with self._lock:
            self._shutdown = True

    def purge(self) -> None:
        """Remove all queued jobs (for testing)."""
        with self._lock:
            self._redis_client.delete(self._ready_key, self._scheduled_key)
            logger.info("Redis queue purged", queue=self.name)

    # ----------------------------- inspection ----------------------------- #
    @staticmethod
    def _safe_int_conversion(value: Any) -> int:
        if value is None:
            return 0
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return int(value)

    def depth(self) -> int:
        ready_count = self._safe_int_conversion(self._redis_client.llen(self._ready_key))
        scheduled_count = self._safe_int_conversion(self._redis_client.zcard(self._scheduled_key))
        return ready_count + scheduled_count

    def __len__(self) -> int:
        return self.depth()

    def scheduled_items(self) -> list[QueueItem]:
        members = self._redis_client.zrangebyscore(self._scheduled_key, "-inf", "+inf")
        return [self._deserialize_job(m) for m in members or []]

    def snapshot(self) -> dict:
        ready_count = self._safe_int_conversion(self._redis_client.llen(self._ready_key))
        scheduled_count = self._safe_int_conversion(self._redis_client.zcard(self._scheduled_key))
        return {
            "queue": self.name,
            "depth": ready_count + scheduled_count,
            "ready": ready_count,
            "scheduled": scheduled_count,
            "shutdown": self._shutdown,
            "redis_active": True,
            "redis_url": self._redis_url,
        }


__all__ = ["RedisQueue"]
