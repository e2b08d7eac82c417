# ppcup/cache.py

import json
import time
from typing import Any, Dict, Optional, Tuple

from ppcup.config import Config
from ppcup.logger import setup_logger

logger = setup_logger(__name__)


class MemoryCache:
    """In-process key/value cache with per-key TTL. Values are stored as JSON."""

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self._data: Dict[str, Tuple[float, str]] = {}

    def get(self, key: str) -> Optional[Any]:
        item = self._data.get(key)
        if item is None:
            return None
        expires_at, raw = item
        if self.clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._data[key] = (self.clock() + ttl_seconds, json.dumps(value, default=str))

    def invalidate(self, prefix: str) -> None:
        for key in [k for k in self._data if k.startswith(prefix)]:
            del self._data[key]


class RedisCache:
    """Same interface on top of Redis (SETEX / SCAN)."""

    def __init__(self, url: str):
        import redis
        self.client = redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, json.dumps(value, default=str))

    def invalidate(self, prefix: str) -> None:
        keys = list(self.client.scan_iter(match=f"{prefix}*"))
        if keys:
            self.client.delete(*keys)


def get_cache(url: Optional[str] = None):
    url = Config.REDIS_URL if url is None else url
    if url:
        logger.info("Using Redis cache")
        return RedisCache(url)
    return MemoryCache()
