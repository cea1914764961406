"""Delayed reindex package initialization.

Coalesces "reindex these records" notifications into per-window timechunks in
Redis and schedules one deferred job per timechunk.
"""
from delayed_reindex.errors import ConfigurationError, RegistrationContentionError
from delayed_reindex.services.scheduler import DelayedReindexScheduler, get_scheduler, postpone

__all__: list[str] = [
    "ConfigurationError",
    "RegistrationContentionError",
    "DelayedReindexScheduler",
    "get_scheduler",
    "postpone",
]
