import pytest

from delayed_reindex.jobs.queue import DelayQueue
from delayed_reindex.jobs.reindex_job import ReindexJob
from delayed_reindex.utils.time import FrozenClock


def _job(resource_type="CitiesIndex", at=1002):
    return ReindexJob.for_timechunk(resource_type, at, queue="chewy", margin=2)


def test_ready_jobs_served_in_enqueue_order():
    q = DelayQueue("chewy")
    first, second, third = _job(at=1), _job(at=2), _job(at=3)
    q.enqueue(first)
    q.enqueue(second)
    q.enqueue(third)
    snap = q.snapshot()
    assert snap.get("ready") == 3
    assert snap.get("depth") == 3
    assert snap.get("queue") == "chewy"
    assert q.dequeue(block=False) is first
    assert q.dequeue(block=False) is second
    assert q.dequeue(block=False) is third


def test_run_at_holds_job_until_due():
    clock = FrozenClock(1000.0)
    q = DelayQueue("chewy", clock=clock)
    job = _job()
    item = q.enqueue(job, run_at=1004)
    assert item.ready_at == 1004
    assert item.queue == "chewy"
    assert q.dequeue(block=False) is None
    clock.set(1003.9)
    assert q.dequeue(block=False) is None
    clock.set(1004.0)
    assert q.dequeue(block=False) is job
    assert q.depth() == 0


def test_past_run_at_is_ready_immediately():
    clock = FrozenClock(1010.0)
    q = DelayQueue("chewy", clock=clock)
    job = _job()
    q.enqueue(job, run_at=1004)
    assert q.snapshot()["ready"] == 1
    assert q.dequeue(block=False) is job


def test_delay_seconds_still_supported():
    clock = FrozenClock(1000.0)
    q = DelayQueue("chewy", clock=clock)
    assert q.enqueue(_job(), delay_seconds=5).ready_at == 1005


def test_shutdown_rejects_new_jobs():
    q = DelayQueue("chewy")
    q.shutdown()
    with pytest.raises(RuntimeError):
        q.enqueue(_job())
    assert q.dequeue(block=False) is None


def test_capacity_limit():
    from delayed_reindex.config import QUEUE_SETTINGS

    QUEUE_SETTINGS["max_in_memory"] = 2
    q = DelayQueue("chewy")
    q.enqueue(_job(at=1))
    q.enqueue(_job(at=2))
    with pytest.raises(OverflowError):
        q.enqueue(_job(at=3))
    q.purge()
    assert q.depth() == 0
