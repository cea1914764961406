"""Producer entry point: accumulate reindex requests into timechunks.

Requests for one resource type arriving within ``latency`` seconds land in the same
Redis set; the first producer to register that set schedules a single job, which
runs ``margin`` seconds after the bucket boundary and reindexes every id collected.

    inputs: latency == 2, margin == 2

    producer call                          | Redis after the call
    ---------------------------------------+--------------------------------------------------
    t=1000.2 postpone("Cities", [1])       | <prefix>:Cities:1002 = {"1;all"}
                                           | <prefix>:Cities:timechunks = {<prefix>:Cities:1002: 1002}
                                           | & job at 1004, args ["Cities", 1002]
    t=1000.6 postpone("Cities", [2])       | <prefix>:Cities:1002 = {"1;all", "2;all"}
                                           | & no new job
    t=1002.4 postpone("Cities", [3])       | <prefix>:Cities:1004 = {"3;all"}
                                           | <prefix>:Cities:timechunks gains <prefix>:Cities:1004: 1004
                                           | & job at 1006, args ["Cities", 1004]

The job at 1006 drains every timechunk scored <= 1004, so it also picks up 1002
if the first job failed or never got dispatched.

Registration and dispatch are two round trips. A crash between them leaves the
bucket without its own job; it is then only drained by a later job for the same
type, or expires with its TTL.
"""
from __future__ import annotations

import threading
from typing import Any, Iterable, Optional

import redis

from delayed_reindex.jobs.reindex_job import ReindexJob
from delayed_reindex.models.schemas import ReindexRequest
from delayed_reindex.services import serializer
from delayed_reindex.services.config_resolver import ConfigResolver
from delayed_reindex.services.dispatcher import JobDispatcher, QueueFactory
from delayed_reindex.services.registrar import TimechunkRegistrar, create_registrar
from delayed_reindex.services.timechunks import BucketKeyer, type_name
from delayed_reindex.utils import get_logger
from delayed_reindex.utils.time import Clock, system_clock

logger = get_logger(__name__)


class DelayedReindexScheduler:
    def __init__(
        self,
        client: redis.Redis,
        *,
        queue_factory: Optional[QueueFactory] = None,
        resolver: Optional[ConfigResolver] = None,
        keyer: Optional[BucketKeyer] = None,
        registrar: Optional[TimechunkRegistrar] = None,
        dispatcher: Optional[JobDispatcher] = None,
        clock: Clock = system_clock,
    ) -> None:
        if dispatcher is None:
            if queue_factory is None:
                from delayed_reindex.jobs.worker_reindex import create_queue
                queue_factory = create_queue
            dispatcher = JobDispatcher(queue_factory)
        self.client = client
        self.resolver = resolver or ConfigResolver()
        self.keyer = keyer or BucketKeyer(clock=clock)
        self.registrar = registrar or create_registrar(client)
        self.dispatcher = dispatcher

    def postpone(
        self,
        resource_type: Any,
        ids: Iterable[Any],
        update_fields: Optional[Iterable[str]] = None,
    ) -> Optional[ReindexJob]:
        """Merge ``ids`` into the current timechunk; return the job if this call scheduled one.

        Store and queue errors propagate; the caller decides whether to retry.
        """
        request = ReindexRequest(
            resource_type=type_name(resource_type),
            ids=list(ids),
            update_fields=list(update_fields) if update_fields else None,
        )
        config = self.resolver.resolve(request.resource_type)
        chunk = self.keyer.timechunk(request.resource_type, config.latency)
        payload = serializer.encode(request.ids, request.update_fields)

        registered = self.registrar.register(chunk.key, chunk.index_key, payload, chunk.at, config.ttl)
        logger.debug(
            "Reindex postponed",
            resource_type=request.resource_type,
            bucket_at=chunk.at,
            ids=len(request.ids),
            registered=registered,
        )
        if not registered:
            return None
        return self.dispatcher.dispatch(request.resource_type, chunk.at, config)


_default_scheduler: Optional[DelayedReindexScheduler] = None
_default_lock = threading.Lock()


def get_scheduler() -> DelayedReindexScheduler:
    """Process-wide scheduler built from settings on first use."""
    global _default_scheduler
    with _default_lock:
        if _default_scheduler is None:
            from delayed_reindex.store import get_redis_client
            _default_scheduler = DelayedReindexScheduler(get_redis_client())
        return _default_scheduler


def postpone(resource_type: Any, ids: Iterable[Any], update_fields: Optional[Iterable[str]] = None) -> Optional[ReindexJob]:
    return get_scheduler().postpone(resource_type, ids, update_fields)


__all__ = ["DelayedReindexScheduler", "get_scheduler", "postpone", "type_name"]
