"""In-memory named delay job queue (single-process deployments and tests).

Features:
- Bound to one queue name; the dispatcher keeps one instance per name.
- Absolute (``run_at``) or relative (``delay_seconds``) scheduled execution time.
- Ready jobs are served FIFO.
- Capacity limits / backpressure via QUEUE_SETTINGS.
- Thread-safe with condition variable.

Two-heaps strategy:
 1. ready_heap: (seq, job)
 2. scheduled_heap: (ready_at_ts, seq, job)

On enqueue:
  - If ready_at <= now -> push to ready_heap else scheduled_heap.
On dequeue:
  - Promote any scheduled items whose ready_at <= now.
  - Pop the oldest ready job (lowest seq).
  - If nothing ready: wait until next scheduled item's ready_at or until notified.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
import threading
import heapq

from delayed_reindex.config import QUEUE_SETTINGS
from delayed_reindex.utils import get_logger
from delayed_reindex.utils.time import Clock, system_clock

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueItem:
    job: Any
    queue: str
    enqueued_at: float
    ready_at: float
    seq: int


def resolve_ready_at(now_ts: float, delay_seconds: float, run_at: Optional[float]) -> float:
    if run_at is not None:
        return float(run_at)
    return now_ts + max(0.0, delay_seconds)


class DelayQueue:
    def __init__(self, name: str = "default", *, clock: Clock = system_clock) -> None:
        self.name = name
        self._clock = clock
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))
        self._max_in_memory = int(QUEUE_SETTINGS.get("max_in_memory", 5000))
        self._lock = threading.RLock()
        self._cv = threading.Condition(self._lock)
        self._ready_heap: list[tuple[int, QueueItem]] = []  # (seq, item)
        self._scheduled_heap: list[tuple[float, int, QueueItem]] = []  # (ready_at_ts, seq, item)
        self._seq_counter = 0
        self._shutdown = False

    # ----------------------------- internal helpers ----------------------------- #
    def _next_seq(self) -> int:
        self._seq_counter += 1
        return self._seq_counter

    def _promote_scheduled(self) -> None:
        now_ts = self._clock()
        while self._scheduled_heap and self._scheduled_heap[0][0] <= now_ts:
            _, seq, item = heapq.heappop(self._scheduled_heap)
            heapq.heappush(self._ready_heap, (seq, item))

    def _await_next_ready(self, timeout: Optional[float]) -> None:
        """Wait until something may have become ready or timeout expires."""
        if self._ready_heap:
            return
        if not self._scheduled_heap:
            self._cv.wait(timeout=timeout)
            return
        wait_time = max(0.0, self._scheduled_heap[0][0] - self._clock())
        if timeout is not None:
            wait_time = min(wait_time, timeout)
        if wait_time > 0:
            self._cv.wait(timeout=wait_time)

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
            if len(self) >= self._max_in_memory:
                raise OverflowError("Queue capacity exceeded")
            now_ts = self._clock()
            ready_at_ts = resolve_ready_at(now_ts, delay_seconds, run_at)
            item = QueueItem(
                job=job,
                queue=self.name,
                enqueued_at=now_ts,
                ready_at=ready_at_ts,
                seq=self._next_seq(),
            )
            if ready_at_ts <= now_ts:
                heapq.heappush(self._ready_heap, (item.seq, item))
            else:
                heapq.heappush(self._scheduled_heap, (ready_at_ts, item.seq, item))
            if self.depth() >= self._warn_depth:
                logger.warning("Queue depth warning", queue=self.name, depth=self.depth())
            self._cv.notify()
            return item

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any:
        """Pop next ready job. Returns None if non-blocking and empty or timeout occurs."""
        end_time = None if timeout is None else self._clock() + timeout
        with self._lock:
            while True:
                if self._shutdown and not self._ready_heap and not self._scheduled_heap:
                    return None
                self._promote_scheduled()
                if self._ready_heap:
                    _, item = heapq.heappop(self._ready_heap)
                    return item.job
                if not block or self._shutdown:
                    return None
                remaining = None if end_time is None else max(0.0, end_time - self._clock())
                if end_time is not None and remaining == 0:
                    return None
                self._await_next_ready(remaining)

    def shutdown(self) -> None:
        with self._lock:
            self._shutdown = True
            self._cv.notify_all()

    # ----------------------------- test utilities ----------------------------- #
    def purge(self) -> None:
        """Remove all queued (ready + scheduled) jobs. Intended for test isolation only."""
        with self._lock:
            self._ready_heap.clear()
            self._scheduled_heap.clear()
            self._cv.notify_all()

    # ----------------------------- inspection ----------------------------- #
    def depth(self) -> int:
        return len(self._ready_heap) + len(self._scheduled_heap)

    def __len__(self) -> int:  # pragma: no cover
        return self.depth()

    def scheduled_items(self) -> list[QueueItem]:
        """Scheduled (not yet ready) items ordered by ready time."""
        with self._lock:
            return [entry[2] for entry in sorted(self._scheduled_heap)]

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "queue": self.name,
                "depth": self.depth(),
                "ready": len(self._ready_heap),
                "scheduled": len(self._scheduled_heap),
                "shutdown": self._shutdown,
            }


__all__ = ["DelayQueue", "QueueItem", "resolve_ready_at"]
