"""Background worker draining timechunks for delayed reindex jobs."""
from __future__ import annotations

import threading
import time
from datetime import datetime
from typing import Any, Callable, Optional

from delayed_reindex.config import DELAYED_REINDEX_SETTINGS, LOG_FILE, LOG_LEVEL, QUEUE_SETTINGS
from delayed_reindex.jobs.queue import DelayQueue
from delayed_reindex.jobs.reindex_job import ReindexJob
from delayed_reindex.services.dispatcher import QueueProtocol
from delayed_reindex.services.timechunk_reader import DrainResult, TimechunkReader
from delayed_reindex.utils import get_logger, log_performance, setup_logging
from delayed_reindex.utils.time import format_elapsed, utc_now

logger = get_logger(__name__)

# Debug instrumentation store (test visibility)
LAST_EXCEPTIONS: list[dict] = []

_memory_queues: dict[str, DelayQueue] = {}
_memory_queues_lock = threading.Lock()

# reindex(resource_type, ids, fields); fields None means every field
ReindexCallback = Callable[[str, list[str], Optional[list[str]]], Any]


class DelayedReindexWorker:
    def __init__(
        self,
        queue: QueueProtocol,
        reader: TimechunkReader,
        reindex: ReindexCallback,
        *,
        poll_timeout: float = 5.0,
    ):
        self.queue = queue
        self.reader = reader
        self.reindex = reindex
        self.poll_timeout = poll_timeout
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._thread = threading.Thread(target=self._loop, name="delayed-reindex-worker", daemon=True)
        self._thread.start()
        logger.info("Delayed reindex worker started")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        logger.info("Delayed reindex worker stop requested")
        if timeout is not None and self._thread is not None:
            self._thread.join(timeout)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self.queue.dequeue(timeout=self.poll_timeout)
                if job is None:
                    continue
                if not isinstance(job, ReindexJob):
                    logger.warning("Skipping unknown job type", job_type=type(job).__name__)
                    continue
                self.process(job)
            except Exception as e:  # pragma: no cover - keeps the thread alive on transport errors
                logger.error("Worker loop error", error=str(e), exc_info=True)
                time.sleep(1)

    def process(self, job: ReindexJob) -> Optional[DrainResult]:
        """Drain and reindex one job; failures are logged and recorded, not raised."""
        started: datetime = utc_now()
        resource_type, at = job.resource_type, job.bucket_at
        try:
            result = self.reader.drain(resource_type, at)
            if result.empty:
                # Duplicate or stale run: an earlier job already took these timechunks
                logger.debug("Nothing to reindex", resource_type=resource_type, bucket_at=at)
                return result
            self.reindex(resource_type, result.ids, result.fields)
            logger.info(
                "Delayed reindex completed",
                resource_type=resource_type,
                bucket_at=at,
                ids=len(result.ids),
                timechunks=len(result.timechunk_keys),
                elapsed=format_elapsed(started),
            )
            log_performance(
                "delayed_reindex",
                (utc_now() - started).total_seconds() * 1000,
                {"resource_type": resource_type, "ids": len(result.ids)},
            )
            return result
        except Exception as e:
            logger.error("Delayed reindex job failed", resource_type=resource_type, bucket_at=at, error=str(e), exc_info=True)
            LAST_EXCEPTIONS.append({
                "resource_type": resource_type,
                "bucket_at": at,
                "error": str(e),
                "type": type(e).__name__,
            })
            del LAST_EXCEPTIONS[:-100]
            return None


def create_queue(name: str) -> QueueProtocol:
    """Create the queue backend for ``name`` based on configuration."""
    if QUEUE_SETTINGS.get("use_redis", False):
        from delayed_reindex.jobs.redis_queue import RedisQueue
        redis_queue = RedisQueue(name)
        if redis_queue.health_check():
            logger.info("Using Redis-backed queue", queue=name)
            return redis_queue
        logger.warning("Redis connection failed, using in-memory queue", queue=name)
    # In-memory queues are process-local; share one per name between producers and workers
    with _memory_queues_lock:
        queue = _memory_queues.get(name)
        if queue is None:
            logger.info("Using in-memory queue", queue=name)
            queue = _memory_queues[name] = DelayQueue(name)
        return queue


def start_worker(
    reindex: ReindexCallback,
    *,
    queue_name: Optional[str] = None,
    client: Any = None,
    configure_logging: bool = True,
) -> DelayedReindexWorker:
    """Build and start a worker for one queue from settings."""
    if configure_logging:
        setup_logging(LOG_LEVEL, LOG_FILE)
    if client is None:
        from delayed_reindex.store import get_redis_client
        client = get_redis_client()
    name = queue_name or str(DELAYED_REINDEX_SETTINGS["queue"])
    worker = DelayedReindexWorker(create_queue(name), TimechunkReader(client), reindex)
    worker.start()
    return worker


__all__ = ["DelayedReindexWorker", "ReindexCallback", "LAST_EXCEPTIONS", "create_queue", "start_worker"]
