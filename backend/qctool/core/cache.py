"""
Result cache.

Stores JSON-serialisable values under string keys with a TTL.
- Redis backend when reachable
- In-memory LRU backend as fallback (and for tests)

The cache is synchronous: it is used from Celery workers and, through a
threadpool, from the API.
"""
import hashlib
import json
import time
from collections import OrderedDict
from typing import Any, Dict, Optional

from redis import Redis
from redis.exceptions import RedisError

from qctool.core.config import get_settings
from qctool.core.logging import get_logger

logger = get_logger(__name__)

VALIDATION_KEY_PREFIX = "gemini_validation_"


def make_validation_cache_key(descriptions: Dict[str, str]) -> str:
    """
    Build the cache key for a set of filtered descriptions.

    Identical description sets (same keys, values and order) map to the same key.
    """
    payload = json.dumps(descriptions, separators=(",", ":"), ensure_ascii=False)
    return VALIDATION_KEY_PREFIX + hashlib.md5(payload.encode("utf-8")).hexdigest()


# =============================================================================
# In-memory backend (fallback)
# =============================================================================
class InMemoryCache:
    """In-memory LRU cache backend with per-entry expiry."""

    def __init__(self, max_size: int = 1000):
        """
        Args:
            max_size: Maximum number of entries
        """
        self._cache: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._max_size = max_size

    def _make_space(self):
        """Evict least recently used entries until there is room."""
        while len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)

    def get(self, key: str) -> Optional[str]:
        if key in self._cache:
            value, expiry = self._cache[key]
            if expiry > time.time():
                self._cache.move_to_end(key)
                return value
            del self._cache[key]
        return None

    def set(self, key: str, value: str, ex: int) -> None:
        if key not in self._cache:
            self._make_space()
        self._cache[key] = (value, time.time() + ex)
        self._cache.move_to_end(key)

    def delete(self, *keys: str) -> None:
        for key in keys:
            self._cache.pop(key, None)


# =============================================================================
# Result cache
# =============================================================================
class ResultCache:
    """
    Key/value cache for validation results.

    Values are stored as JSON strings; get() returns the decoded value or None.
    """

    def __init__(self, backend: Any = None):
        """
        Args:
            backend: Object with Redis-style get/set(ex=)/delete methods.
                     Defaults to a fresh InMemoryCache.
        """
        self._backend = backend if backend is not None else InMemoryCache()

    @property
    def backend(self) -> str:
        """Backend name: "redis" or "memory"."""
        return "memory" if isinstance(self._backend, InMemoryCache) else "redis"

    @classmethod
    def from_settings(cls, use_redis: Optional[bool] = None) -> "ResultCache":
        """
        Build a cache from settings, falling back to memory if Redis is unreachable.

        Args:
            use_redis: Force (True) or skip (False) Redis; None follows cache_backend
        """
        settings = get_settings()
        if use_redis is None:
            use_redis = settings.cache_backend == "redis"

        if use_redis:
            try:
                client = Redis.from_url(
                    settings.get_redis_url_with_password(),
                    decode_responses=True,
                )
                client.ping()
                logger.info("cache_redis_initialized", url=settings.redis_url)
                return cls(client)
            except RedisError as e:
                logger.warning("cache_redis_init_failed", error=str(e))

        logger.info("cache_memory_initialized")
        return cls(InMemoryCache(max_size=1000))

    def get(self, key: str) -> Optional[Any]:
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache_decode_failed", key=key)
            self._backend.delete(key)
            return None

    def put(self, key: str, value: Any, ttl: int) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: JSON-serialisable value
            ttl: Expiry in seconds
        """
        self._backend.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)
        logger.debug("cache_put", key=key, ttl=ttl)


_result_cache: Optional[ResultCache] = None


def get_result_cache() -> ResultCache:
    """Get or create the process-wide result cache."""
    global _result_cache
    if _result_cache is None:
        _result_cache = ResultCache.from_settings()
    return _result_cache
