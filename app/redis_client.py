# Process-wide Redis connection shared by contract locks, per-actor quotas and event fan-out.
# Off unless REDIS_ENABLED is truthy. Callers treat get_redis() returning None as "run without Redis".
import logging
import os
import threading
import time
from typing import Optional

import redis
from redis.exceptions import RedisError

logger = logging.getLogger("vinhousing.redis")


def is_redis_enabled() -> bool:
    return os.getenv("REDIS_ENABLED", "false").strip().lower() in {"1", "true", "yes", "on"}


class _Connection:
    """
    Holds the shared client.

    A failed connect is not retried until REDIS_RECONNECT_SECONDS have passed, so a dead Redis
    costs one timeout per period instead of one per request.
    """
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._client: Optional[redis.Redis] = None
        self._next_attempt = 0.0

    def get(self) -> Optional[redis.Redis]:
        with self._lock:
            if self._client is not None:
                return self._client
            now = time.monotonic()
            if now < self._next_attempt:
                return None
            self._client = self._connect(now)
            return self._client

    def install(self, client: Optional[redis.Redis]) -> None:
        with self._lock:
            self._client = client
            self._next_attempt = 0.0

    def _connect(self, now: float) -> Optional[redis.Redis]:
        url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        timeout = int(os.getenv("REDIS_TIMEOUT_MS", "250")) / 1000
        pool = redis.ConnectionPool.from_url(url, socket_timeout=timeout, socket_connect_timeout=timeout)
        client = redis.Redis(connection_pool=pool)
        try:
            client.ping()
        except RedisError as exc:
            pool.disconnect()
            backoff = float(os.getenv("REDIS_RECONNECT_SECONDS", "30"))
            self._next_attempt = now + backoff
            logger.warning("redis.unavailable", extra={"retry_in_seconds": backoff, "reason": str(exc)})
            return None
        logger.info("redis.connected")
        return client


_connection = _Connection()


def get_redis() -> Optional[redis.Redis]:
    """The shared client, or None when Redis is disabled or currently unreachable. Never raises."""
    if not is_redis_enabled():
        return None
    return _connection.get()


def use_redis(client: Optional[redis.Redis]) -> None:
    """Install a ready client (e.g. an in-memory one in tests); None drops the cached client."""
    _connection.install(client)
