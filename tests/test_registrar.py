"""Tests for the atomic timechunk merge-and-register step (Lua and WATCH variants)."""
import hashlib
import threading

import pytest
import redis

from delayed_reindex.errors import ConfigurationError, RegistrationContentionError
from delayed_reindex.services import serializer
from delayed_reindex.services.registrar import (
    REGISTER_TIMECHUNK_SCRIPT,
    LuaTimechunkRegistrar,
    WatchTimechunkRegistrar,
    create_registrar,
)

BUCKET = "test:CitiesIndex:1002"
INDEX = "test:CitiesIndex:timechunks"


def _members(client, key):
    return {m.decode() if isinstance(m, bytes) else m for m in client.smembers(key)}


@pytest.fixture(params=["lua", "watch"])
def registrar(request, redis_client):
    return create_registrar(redis_client, request.param)


def test_create_registrar_strategies(redis_client):
    assert isinstance(create_registrar(redis_client, "lua"), LuaTimechunkRegistrar)
    assert isinstance(create_registrar(redis_client, "watch"), WatchTimechunkRegistrar)
    with pytest.raises(ConfigurationError):
        create_registrar(redis_client, "multi")


def test_first_registration_is_new(registrar, redis_client):
    assert registrar.register(BUCKET, INDEX, "1;all", 1002, 60) is True
    assert _members(redis_client, BUCKET) == {"1;all"}
    assert redis_client.zscore(INDEX, BUCKET) == 1002


def test_second_registration_merges_without_reregistering(registrar, redis_client):
    assert registrar.register(BUCKET, INDEX, "1;all", 1002, 60) is True
    assert registrar.register(BUCKET, INDEX, "2;all", 1002, 60) is False
    # duplicate payloads collapse
    assert registrar.register(BUCKET, INDEX, "2;all", 1002, 60) is False
    assert _members(redis_client, BUCKET) == {"1;all", "2;all"}
    assert redis_client.zcard(INDEX) == 1


def test_ttl_refreshed_on_every_merge(registrar, redis_client):
    registrar.register(BUCKET, INDEX, "1;all", 1002, 30)
    assert redis_client.ttl(BUCKET) >= 29
    assert redis_client.ttl(INDEX) >= 29
    # a later merge with a longer ttl refreshes the bucket, index keeps its registration ttl
    registrar.register(BUCKET, INDEX, "2;all", 1002, 300)
    assert redis_client.ttl(BUCKET) >= 299
    assert redis_client.ttl(INDEX) <= 30


def test_buckets_of_same_type_share_index(registrar, redis_client):
    assert registrar.register(BUCKET, INDEX, "1;all", 1002, 60) is True
    assert registrar.register("test:CitiesIndex:1004", INDEX, "3;all", 1004, 60) is True
    scored = redis_client.zrangebyscore(INDEX, "-inf", "+inf")
    assert [s.decode() if isinstance(s, bytes) else s for s in scored] == [BUCKET, "test:CitiesIndex:1004"]


def test_concurrent_registrations_exactly_one_new(registrar, redis_client):
    producers = 32
    results: list[bool] = []
    results_lock = threading.Lock()
    start = threading.Barrier(producers)

    def produce(i: int) -> None:
        start.wait()
        outcome = registrar.register(BUCKET, INDEX, serializer.encode([i]), 1002, 60)
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=produce, args=(i,)) for i in range(producers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert results.count(False) == producers - 1
    ids, _ = serializer.merge_payloads(_members(redis_client, BUCKET))
    assert set(ids) == {str(i) for i in range(producers)}


def test_lua_registrar_runs_script_on_server(redis_client):
    registrar = LuaTimechunkRegistrar(redis_client)
    assert registrar.register(BUCKET, INDEX, "1;all", 1002, 60) is True
    assert registrar.register(BUCKET, INDEX, "2;all", 1002, 60) is False
    sha = hashlib.sha1(REGISTER_TIMECHUNK_SCRIPT.encode("utf-8")).hexdigest()
    assert redis_client.script_exists(sha) == [True]
    assert _members(redis_client, BUCKET) == {"1;all", "2;all"}


def test_watch_registrar_retries_after_concurrent_change(redis_client):
    registrar = WatchTimechunkRegistrar(redis_client, max_retries=3)
    original_pipeline = redis_client.pipeline
    interfered = {"done": False}

    class InterferingPipeline:
        def __init__(self, pipe):
            self._pipe = pipe

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self._pipe.reset()

        def __getattr__(self, name):
            return getattr(self._pipe, name)

        def multi(self):
            # another producer registers the bucket between our check and EXEC
            if not interfered["done"]:
                interfered["done"] = True
                redis_client.zadd(INDEX, {BUCKET: 1002})
            self._pipe.multi()

    redis_client.pipeline = lambda transaction=True: InterferingPipeline(original_pipeline(transaction))
    assert registrar.register(BUCKET, INDEX, "1;all", 1002, 60) is False
    assert interfered["done"]
    assert _members(redis_client, BUCKET) == {"1;all"}


def test_watch_registrar_gives_up_after_bound(redis_client):
    registrar = WatchTimechunkRegistrar(redis_client, max_retries=2)

    class AlwaysConflicting:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return None

        def watch(self, *keys):
            return None

        def zrank(self, *args):
            return None

        def multi(self):
            return None

        def sadd(self, *args):
            return self

        def expire(self, *args):
            return self

        def zadd(self, *args):
            return self

        def execute(self):
            raise redis.WatchError("Watched variable changed.")

    redis_client.pipeline = lambda transaction=True: AlwaysConflicting()
    with pytest.raises(RegistrationContentionError) as info:
        registrar.register(BUCKET, INDEX, "1;all", 1002, 60)
    assert info.value.attempts == 2


def test_watch_registrar_rejects_zero_retries(redis_client):
    with pytest.raises(ConfigurationError):
        WatchTimechunkRegistrar(redis_client, max_retries=0)


def test_store_errors_propagate(redis_client):

    def broken(*args, **kwargs):
        raise redis.ConnectionError("Connection refused")

    redis_client.register_script = lambda script: broken
    registrar = LuaTimechunkRegistrar(redis_client)
    with pytest.raises(redis.ConnectionError):
        registrar.register(BUCKET, INDEX, "1;all", 1002, 60)
