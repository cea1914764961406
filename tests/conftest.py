"""Pytest fixtures.

Redis is replaced by ``fakeredis`` (with its Lua runtime), so the registration
script, WATCH/MULTI/EXEC pipelines, expiry and blocking pops run as they would
against a server, without one.

To run the store-backed tests against a real server instead:
    export USE_REAL_REDIS=true  # uses redis://localhost:6379/15, flushed per test
    pytest
"""
import os
import sys
from pathlib import Path

import fakeredis
import pytest
import redis

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from delayed_reindex.config import DELAYED_REINDEX_SETTINGS, QUEUE_SETTINGS  # noqa: E402
from delayed_reindex.jobs import worker_reindex  # noqa: E402
from delayed_reindex.utils.time import FrozenClock  # noqa: E402

USE_REAL_REDIS = os.environ.get("USE_REAL_REDIS", "").lower() in ("true", "1", "yes")
REAL_REDIS_URL = os.environ.get("REAL_REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture
def redis_client():
    """Provide a Redis client - real (USE_REAL_REDIS) or fakeredis with a private server."""
    if USE_REAL_REDIS:
        client = redis.from_url(REAL_REDIS_URL, socket_connect_timeout=2.0)
        client.ping()
        client.flushdb()
        yield client
        client.flushdb()
    else:
        client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
        yield client
        client.flushall()


@pytest.fixture
def frozen_clock():
    return FrozenClock(1000.0)


@pytest.fixture(autouse=True)
def _isolate_settings():
    """Restore module-level settings that tests monkeypatch."""
    reindex_settings = dict(DELAYED_REINDEX_SETTINGS)
    queue_settings = dict(QUEUE_SETTINGS)
    yield
    DELAYED_REINDEX_SETTINGS.clear()
    DELAYED_REINDEX_SETTINGS.update(reindex_settings)
    QUEUE_SETTINGS.clear()
    QUEUE_SETTINGS.update(queue_settings)
    worker_reindex.LAST_EXCEPTIONS.clear()
    for queue in worker_reindex._memory_queues.values():
        queue.shutdown()
    worker_reindex._memory_queues.clear()
