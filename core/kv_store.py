"""
Key-value store backends used for session state.

Two implementations share one small interface (set with expiry, get, delete):
- RedisKeyValueStore: production backend, expiry handled natively by Redis
- MemoryKeyValueStore: single-process backend for local runs, expiry is
  checked lazily when a key is read
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from redis import Redis
from redis.exceptions import RedisError

from utils.logger import get_logger

logger = get_logger(__name__)


class KeyValueStoreError(Exception):
    """Raised when the backing store cannot complete an operation."""


def _namespace(key: str) -> str:
    # keys end with a user id or a refresh token, keep the latter out of logs
    return key.rsplit(":", 1)[0]


class KeyValueStore:
    """Interface every backend implements."""

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class RedisKeyValueStore(KeyValueStore):
    """
    Redis backend.

    The client must be created with decode_responses=True so values come
    back as str.
    """

    def __init__(self, client: Redis):
        self.client = client

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            logger.error(
                "Redis SET failed",
                extra={"key_namespace": _namespace(key), "error": str(e), "error_type": type(e).__name__}
            )
            raise KeyValueStoreError(f"Failed to set key in {_namespace(key)}") from e

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except RedisError as e:
            logger.error(
                "Redis GET failed",
                extra={"key_namespace": _namespace(key), "error": str(e), "error_type": type(e).__name__}
            )
            raise KeyValueStoreError(f"Failed to get key in {_namespace(key)}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except RedisError as e:
            logger.error(
                "Redis DELETE failed",
                extra={"key_namespace": _namespace(key), "error": str(e), "error_type": type(e).__name__}
            )
            raise KeyValueStoreError(f"Failed to delete key in {_namespace(key)}") from e


class MemoryKeyValueStore(KeyValueStore):
    """
    In-process backend with lazy expiry.

    An expired entry is treated as absent and removed on the read that finds it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._data[key]
                logger.debug("Evicted expired key", extra={"key_namespace": _namespace(key)})
                return None

            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


def build_kv_store(backend: str, redis_url: str, socket_timeout: float) -> KeyValueStore:
    """
    Create the configured backend.

    Args:
        backend: "redis" or "memory"
        redis_url: Connection URL used by the redis backend
        socket_timeout: Per-command timeout in seconds for the redis backend
    """
    if backend == "memory":
        logger.warning("Using in-memory key-value store; sessions are not shared between processes")
        return MemoryKeyValueStore()

    if backend != "redis":
        raise ValueError(f"Unknown key-value backend: {backend}")

    client = Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    logger.info("Redis key-value store configured", extra={"backend": backend})
    return RedisKeyValueStore(client)
