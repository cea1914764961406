import redis

from delayed_reindex import store


def test_check_redis_health_with_client(redis_client):
    assert store.check_redis_health(redis_client) is True


def test_check_redis_health_unreachable():
    class Unreachable:
        def ping(self):
            raise redis.ConnectionError("Connection refused")

    assert store.check_redis_health(Unreachable()) is False


def test_get_redis_client_uses_settings(monkeypatch):
    seen = {}

    def fake_from_url(url, **kwargs):
        seen["url"] = url
        seen.update(kwargs)
        return object()

    monkeypatch.setattr(redis, "from_url", fake_from_url)
    monkeypatch.setitem(store.REDIS_SETTINGS, "url", "redis://cache:6380/2")
    store.get_redis_client()
    assert seen["url"] == "redis://cache:6380/2"
    assert seen["socket_connect_timeout"] == 2.0
