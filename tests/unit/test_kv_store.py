import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from core.kv_store import (KeyValueStoreError, MemoryKeyValueStore, RedisKeyValueStore,
    build_kv_store)


class FakeClock:

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class BrokenRedis:
    """Client whose every command fails as if the server were down."""

    def set(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    def get(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")

    def delete(self, *args, **kwargs):
        raise RedisConnectionError("Connection refused")


# Memory backend

def test_memory_set_get_delete():
    store = MemoryKeyValueStore()

    store.set("svc:refresh_token:1", "abc", 60)
    assert store.get("svc:refresh_token:1") == "abc"

    store.delete("svc:refresh_token:1")
    assert store.get("svc:refresh_token:1") is None


def test_memory_delete_missing_key_is_noop():
    MemoryKeyValueStore().delete("never-set")


def test_memory_lazy_expiry():
    clock = FakeClock()
    store = MemoryKeyValueStore(clock=clock)
    store.set("k", "v", 10)

    clock.advance(9.9)
    assert store.get("k") == "v"

    clock.advance(0.1)
    assert store.get("k") is None
    # evicted on read
    assert "k" not in store._data


def test_memory_set_overwrites_value_and_ttl():
    clock = FakeClock()
    store = MemoryKeyValueStore(clock=clock)
    store.set("k", "old", 5)
    clock.advance(4)
    store.set("k", "new", 5)
    clock.advance(4)

    assert store.get("k") == "new"


# Redis backend

def test_redis_round_trip_sets_expiry(redis_client):
    store = RedisKeyValueStore(redis_client)
    store.set("svc:user_id:tok", "42", 120)

    assert store.get("svc:user_id:tok") == "42"
    assert 0 < redis_client.ttl("svc:user_id:tok") <= 120

    store.delete("svc:user_id:tok")
    assert store.get("svc:user_id:tok") is None


def test_redis_missing_key(redis_client):
    assert RedisKeyValueStore(redis_client).get("absent") is None


@pytest.mark.parametrize("operation, args", [
    ("set", ("svc:user_id:secret-token", "1", 10)),
    ("get", ("svc:user_id:secret-token",)),
    ("delete", ("svc:user_id:secret-token",)),
])
def test_redis_failures_are_wrapped(operation, args):
    store = RedisKeyValueStore(BrokenRedis())

    with pytest.raises(KeyValueStoreError) as exc_info:
        getattr(store, operation)(*args)

    assert isinstance(exc_info.value.__cause__, RedisConnectionError)
    # the token part of the key never reaches the message
    assert "secret-token" not in str(exc_info.value)


# Factory

def test_build_memory_backend():
    assert isinstance(build_kv_store("memory", "redis://unused", 1.0), MemoryKeyValueStore)


def test_build_redis_backend_does_not_connect():
    store = build_kv_store("redis", "redis://localhost:6399/0", 0.5)

    assert isinstance(store, RedisKeyValueStore)


def test_build_unknown_backend():
    with pytest.raises(ValueError):
        build_kv_store("memcached", "redis://unused", 1.0)
