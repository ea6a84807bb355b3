import json

import redis

from bizintel import config
from bizintel.cache import InMemoryQueryCache, RedisQueryCache, create_query_cache_from_env


def test_cache_round_trip() -> None:
    cache = InMemoryQueryCache()
    answer = {"answerPayload": {"answer": "Revenue is up 12%"}, "query": "How is revenue?"}

    cache.put("ds_1", "How is revenue?", answer)
    cached = cache.get("ds_1", "How is revenue?")

    assert cached is not None
    assert cached.answer == answer
    assert cached.dataset_id == "ds_1"
    assert cached.question == "How is revenue?"


def test_cache_key_is_literal() -> None:
    cache = InMemoryQueryCache()
    cache.put("ds_1", "How is revenue?", {"ok": True})

    assert cache.get("ds_1", "how is revenue?") is None
    assert cache.get("ds_1", "How is revenue? ") is None
    assert cache.get("ds_2", "How is revenue?") is None


def test_bounded_cache_evicts_oldest() -> None:
    cache = InMemoryQueryCache(max_entries=2)
    cache.put("ds", "q1", {"n": 1})
    cache.put("ds", "q2", {"n": 2})
    cache.put("ds", "q3", {"n": 3})

    assert cache.get("ds", "q1") is None
    assert len(cache) == 2


def test_ttl_expires_entries(clock) -> None:
    cache = InMemoryQueryCache(ttl_seconds=30, clock=clock)
    cache.put("ds", "q", {"n": 1})
    clock.advance(29)
    assert cache.get("ds", "q") is not None
    clock.advance(2)
    assert cache.get("ds", "q") is None


class _FakeRedis:
    def __init__(self) -> None:
        self.values = {}
        self.ttls = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value
        self.ttls[key] = ttl


def test_redis_cache_round_trip() -> None:
    fake = _FakeRedis()
    cache = RedisQueryCache(fake, ttl_seconds=120)

    cache.put("ds_9", "Top region?", {"answerPayload": {"answer": "North"}})

    [key] = fake.values
    assert key.startswith("bizintel:answer:v1:ds_9:")
    assert fake.ttls[key] == 120
    assert json.loads(fake.values[key]) == {"answerPayload": {"answer": "North"}}
    assert cache.get("ds_9", "Top region?").answer == {"answerPayload": {"answer": "North"}}
    assert cache.get("ds_9", "top region?") is None


def test_factory_defaults_to_memory(monkeypatch) -> None:
    monkeypatch.setattr(config, "REDIS_URL", "")
    assert isinstance(create_query_cache_from_env(), InMemoryQueryCache)


class _UnreachableRedis:
    def _refuse(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("Error 111 connecting to 127.0.0.1:1. Connection refused.")

    ping = get = setex = _refuse


def test_redis_errors_are_cache_misses() -> None:
    cache = RedisQueryCache(_UnreachableRedis())

    cache.put("ds_9", "Top region?", {"answerPayload": {"answer": "North"}})

    assert cache.get("ds_9", "Top region?") is None


def test_factory_falls_back_to_memory_when_redis_is_down(monkeypatch) -> None:
    monkeypatch.setattr(config, "REDIS_URL", "redis://127.0.0.1:1/0")
    monkeypatch.setattr(RedisQueryCache, "from_url", classmethod(lambda cls, url, ttl_seconds=86400: cls(_UnreachableRedis())))

    assert isinstance(create_query_cache_from_env(), InMemoryQueryCache)


def test_factory_uses_redis_when_reachable(monkeypatch) -> None:
    class _PingableRedis(_FakeRedis):
        def ping(self):
            return True

    monkeypatch.setattr(config, "REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setattr(RedisQueryCache, "from_url", classmethod(lambda cls, url, ttl_seconds=86400: cls(_PingableRedis())))

    assert isinstance(create_query_cache_from_env(), RedisQueryCache)
