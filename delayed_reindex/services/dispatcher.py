"""Submits one deferred reindex job per newly registered timechunk."""
from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Protocol

from delayed_reindex.jobs.reindex_job import ReindexJob
from delayed_reindex.models.schemas import StrategyConfig
from delayed_reindex.utils import get_logger

logger = get_logger(__name__)


class QueueProtocol(Protocol):
    def enqueue(self, job: Any, *, delay_seconds: float = 0.0, run_at: Optional[float] = None) -> Any: ...
    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any: ...
    def shutdown(self) -> None: ...
    def snapshot(self) -> dict: ...


QueueFactory = Callable[[str], QueueProtocol]


class JobDispatcher:
    """Fire-and-forget submission; retries belong to the queue, errors propagate."""

    def __init__(self, queue_factory: QueueFactory) -> None:
        self._queue_factory = queue_factory
        self._queues: dict[str, QueueProtocol] = {}
        self._lock = threading.Lock()

    def queue(self, name: str) -> QueueProtocol:
        with self._lock:
            queue = self._queues.get(name)
            if queue is None:
                queue = self._queues[name] = self._queue_factory(name)
            return queue

    def dispatch(self, resource_type: str, at: int, config: StrategyConfig) -> ReindexJob:
        job = ReindexJob.for_timechunk(resource_type, at, queue=config.queue, margin=config.margin)
        self.queue(job.queue).enqueue(job, run_at=job.at)
        logger.info("Scheduled reindex job", resource_type=resource_type, bucket_at=at, run_at=job.at, queue=job.queue)
        return job


__all__ = ["JobDispatcher", "QueueProtocol", "QueueFactory"]
