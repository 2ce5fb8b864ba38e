# marketplace/available_cache.py
import time
import logging
import threading

import redis

logger = logging.getLogger("adspace_backend")


class TtlCache:
    """
    Process-local string cache with per-key expiry.

    - thread-safe (route handlers run in a thread pool)
    - expired entries are dropped lazily on get() or by sweep_expired()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # key -> {"value": str, "expires_at": float}
        self._items: dict[str, dict[str, object]] = {}

    def get(self, key: str) -> str | None:
        now = time.time()
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            if float(item["expires_at"]) <= now:
                del self._items[key]
                return None
            return item["value"]  # type: ignore[return-value]

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._items[key] = {"value": value, "expires_at": time.time() + ttl_seconds}

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def sweep_expired(self) -> int:
        now = time.time()
        removed = 0
        with self._lock:
            expired = [k for k, v in self._items.items() if float(v["expires_at"]) <= now]
            for k in expired:
                del self._items[k]
                removed += 1
        return removed


class RedisCache:
    """Same interface as TtlCache, backed by a shared Redis."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> str | None:
        try:
            value = self.client.get(key)
        except redis.RedisError as e:
            logger.warning("Redis GET %s failed, treating as miss: %s", key, e)
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self.client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as e:
            logger.warning("Redis SET %s failed: %s", key, e)

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.warning("Redis DEL %s failed: %s", key, e)

    def sweep_expired(self) -> int:
        # Redis expires keys on its own
        return 0


def build_cache(redis_url: str = ""):
    if redis_url:
        logger.info("Available-listing cache: Redis")
        return RedisCache.from_url(redis_url)
    logger.info("Available-listing cache: in-process")
    return TtlCache()
