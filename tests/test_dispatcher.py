import pytest

from delayed_reindex.jobs.queue import DelayQueue
from delayed_reindex.jobs.reindex_job import HANDLER_ID, ReindexJob
from delayed_reindex.models.schemas import StrategyConfig
from delayed_reindex.services.dispatcher import JobDispatcher


def _config(**overrides) -> StrategyConfig:
    values = {"latency": 2, "margin": 2, "ttl": 60, "queue": "chewy"}
    values.update(overrides)
    return StrategyConfig(**values)


def test_dispatch_builds_descriptor(frozen_clock):
    queues: dict[str, DelayQueue] = {}

    def factory(name):
        queues[name] = DelayQueue(name, clock=frozen_clock)
        return queues[name]

    dispatcher = JobDispatcher(factory)
    job = dispatcher.dispatch("CitiesIndex", 1002, _config())

    assert job.descriptor() == {
        "queue": "chewy",
        "at": 1004,
        "handler": HANDLER_ID,
        "args": ["CitiesIndex", 1002],
    }
    items = queues["chewy"].scheduled_items()
    assert len(items) == 1
    assert items[0].ready_at == 1004
    assert items[0].job is job


def test_dispatch_routes_by_queue_name_and_caches_queues(frozen_clock):
    created: list[str] = []

    def factory(name):
        created.append(name)
        return DelayQueue(name, clock=frozen_clock)

    dispatcher = JobDispatcher(factory)
    dispatcher.dispatch("A", 1002, _config())
    dispatcher.dispatch("A", 1004, _config())
    dispatcher.dispatch("B", 1002, _config(queue="bulk"))
    assert created == ["chewy", "bulk"]
    assert dispatcher.queue("chewy").snapshot()["scheduled"] == 2
    assert dispatcher.queue("bulk").snapshot()["scheduled"] == 1


def test_dispatch_propagates_queue_errors(frozen_clock):
    queue = DelayQueue("chewy", clock=frozen_clock)
    queue.shutdown()
    dispatcher = JobDispatcher(lambda name: queue)
    with pytest.raises(RuntimeError):
        dispatcher.dispatch("A", 1002, _config())


def test_reindex_job_accessors():
    job = ReindexJob.for_timechunk("UsersIndex", 1010, queue="chewy", margin=3)
    assert job.at == 1013
    assert job.resource_type == "UsersIndex"
    assert job.bucket_at == 1010
    assert job.descriptor()["args"] == ["UsersIndex", 1010]
