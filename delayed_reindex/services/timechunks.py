"""Time bucketing: maps "now" + latency to a shared bucket timestamp and Redis keys.

Every producer computes the bucket independently. Two calls made within the same
latency-aligned window return the same timestamp, so no coordination is needed
to agree on which timechunk a request belongs to.
"""
from __future__ import annotations

from dataclasses import dataclass

from delayed_reindex.config import DELAYED_REINDEX_SETTINGS
from delayed_reindex.errors import ConfigurationError
from delayed_reindex.utils.time import Clock, system_clock

TIMECHUNKS_SUFFIX = "timechunks"


def type_name(resource_type: object) -> str:
    """Accept a plain name or a class (e.g. an index class) and return its name."""
    if isinstance(resource_type, str):
        return resource_type
    return getattr(resource_type, "__name__", None) or str(resource_type)


def validate_latency(latency: object) -> int:
    # bool is an int subclass; True would silently mean a 1s window
    if isinstance(latency, bool) or not isinstance(latency, int) or latency <= 0:
        raise ConfigurationError(f"latency must be a positive integer, got {latency!r}")
    return latency


def bucket_timestamp(now: float, latency: int) -> int:
    """Return the latency-aligned timestamp for ``latency`` seconds from ``now``.

    The value jumps by ``latency`` once per window, e.g. with latency=2:
    1000.2 -> 1002, 1000.6 -> 1002, 1002.4 -> 1004.
    """
    latency = validate_latency(latency)
    schedule_at = now + latency
    return int(schedule_at - (schedule_at % latency))


@dataclass(frozen=True, slots=True)
class Timechunk:
    resource_type: str
    at: int
    key: str
    index_key: str


class BucketKeyer:
    def __init__(self, *, key_prefix: str | None = None, clock: Clock = system_clock) -> None:
        self.key_prefix = key_prefix or str(DELAYED_REINDEX_SETTINGS["key_prefix"])
        self.clock = clock

    def index_key(self, resource_type: str) -> str:
        return f"{self.key_prefix}:{resource_type}:{TIMECHUNKS_SUFFIX}"

    def bucket_key(self, resource_type: str, at: int) -> str:
        return f"{self.key_prefix}:{resource_type}:{at}"

    def timechunk(self, resource_type: str, latency: int, now: float | None = None) -> Timechunk:
        at = bucket_timestamp(self.clock() if now is None else now, latency)
        return Timechunk(
            resource_type=resource_type,
            at=at,
            key=self.bucket_key(resource_type, at),
            index_key=self.index_key(resource_type),
        )


__all__ = ["BucketKeyer", "Timechunk", "bucket_timestamp", "validate_latency", "TIMECHUNKS_SUFFIX", "type_name"]
