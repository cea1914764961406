"""Deferred reindex job descriptor."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

HANDLER_ID = "delayed_reindex.jobs.worker_reindex.DelayedReindexWorker"


@dataclass(slots=True)
class ReindexJob:
    queue: str
    at: int  # epoch seconds the job may run at (bucket timestamp + margin)
    args: list[Any] = field(default_factory=list)  # [resource_type, bucket timestamp]
    handler: str = HANDLER_ID

    @classmethod
    def for_timechunk(cls, resource_type: str, bucket_at: int, *, queue: str, margin: int) -> "ReindexJob":
        return cls(queue=queue, at=bucket_at + margin, args=[resource_type, bucket_at])

    @property
    def resource_type(self) -> str:
        return str(self.args[0])

    @property
    def bucket_at(self) -> int:
        return int(self.args[1])

    def descriptor(self) -> dict[str, Any]:
        return {"queue": self.queue, "at": self.at, "handler": self.handler, "args": list(self.args)}


__all__ = ["ReindexJob", "HANDLER_ID"]
