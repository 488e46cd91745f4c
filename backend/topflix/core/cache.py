import json
import logging
import zlib
from typing import Optional, Any, List
import redis
from .config import get_settings

logger = logging.getLogger(__name__)

CACHE_VERSION_TTL = 7 * 24 * 60 * 60


class CacheService:
    """Redis cache backend (JSON + optional zlib)"""

    def __init__(self, url: Optional[str] = None, compress: bool = True):
        settings = get_settings()
        self.redis = redis.Redis.from_url(url or settings.REDIS_URL, decode_responses=False)
        self.compress = compress

    def get_json(self, key: str) -> Optional[Any]:
        try:
            data = self.redis.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None
        if data is None:
            return None
        if self.compress:
            try:
                data = zlib.decompress(data)
            except zlib.error:
                pass
        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            return json.loads(data)
        except ValueError:
            return None

    def set_json(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            raw = json.dumps(value, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            logger.warning(f"Cache value for {key} is not serializable: {str(e)}")
            return False
        payload = zlib.compress(raw) if self.compress else raw
        try:
            self.redis.setex(key, ttl_seconds, payload)
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {str(e)}")
            return False
        return True

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Read a plain integer counter (stored uncompressed by INCR).

        A missing key yields ``default``; a Redis error always yields None.
        """
        try:
            data = self.redis.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None
        if data is None:
            return default
        try:
            return int(data)
        except ValueError:
            return None

    def incr(self, key: str, ttl_seconds: int) -> Optional[int]:
        """Atomically increment a counter and refresh its TTL"""
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, ttl_seconds)
            value, _ = pipe.execute()
            return int(value)
        except redis.RedisError as e:
            logger.warning(f"Cache increment failed for {key}: {str(e)}")
            return None

    def list_keys(self, prefix: str) -> List[str]:
        keys = []
        try:
            for k in self.redis.scan_iter(f"{prefix}*"):
                keys.append(k.decode("utf-8") if isinstance(k, bytes) else k)
        except redis.RedisError as e:
            logger.warning(f"Cache scan failed for {prefix}: {str(e)}")
        return keys

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except redis.RedisError:
            return False


_cache_backend: Optional[CacheService] = None

def get_cache_backend() -> Optional[CacheService]:
    """Shared cache backend, or None when REDIS_URL is not configured"""
    global _cache_backend
    settings = get_settings()
    if not settings.REDIS_URL:
        return None
    if _cache_backend is None:
        _cache_backend = CacheService(settings.REDIS_URL)
    return _cache_backend


class VersionedCache:
    """Namespace-wide cache invalidation through a version counter.

    Keys are written as ``{namespace}:v{version}:{key}``. Bumping the counter
    orphans every previous key at once; orphans expire through their own TTL.

    One instance is meant to live for a single request: the version is read
    from the backend at most once and memoized on the instance, so the number
    of backend round trips for the version stays constant per request.
    Concurrent requests never share the memo. When the version cannot be
    read, the rest of the request bypasses the cache instead of guessing one.
    """

    def __init__(self, backend: Optional[CacheService], namespace: str = "db"):
        self.backend = backend
        self.namespace = namespace
        self._version: Optional[int] = None
        self._version_read = False

    @property
    def version_key(self) -> str:
        return f"{self.namespace}:cache_version"

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def version(self) -> Optional[int]:
        """Memoized namespace version, or None when the counter is unreadable"""
        if not self.enabled:
            return None
        if not self._version_read:
            self._version_read = True
            try:
                self._version = self.backend.get_int(self.version_key, default=0)
            except Exception as e:
                logger.warning(f"Cache version read error: {str(e)}")
                self._version = None
            if self._version is None:
                logger.warning("Cache version unavailable, bypassing cache for this request")
        return self._version

    def _key(self, key: str) -> Optional[str]:
        version = self.version()
        if version is None:
            return None
        return f"{self.namespace}:v{version}:{key}"

    def get(self, key: str) -> Optional[Any]:
        versioned_key = self._key(key)
        if versioned_key is None:
            return None
        try:
            return self.backend.get_json(versioned_key)
        except Exception as e:
            logger.warning(f"Cache read error for {key}: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        versioned_key = self._key(key)
        if versioned_key is None:
            return False
        try:
            return self.backend.set_json(versioned_key, value, ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache write error for {key}: {str(e)}")
            return False

    def invalidate_all(self) -> Optional[int]:
        """Bump the namespace version; returns the new version or None"""
        if not self.enabled:
            return None
        try:
            new_version = self.backend.incr(self.version_key, CACHE_VERSION_TTL)
        except Exception as e:
            logger.warning(f"Cache invalidation error: {str(e)}")
            return None
        if new_version is None:
            return None
        self._version = new_version
        self._version_read = True
        logger.info(f"Cache invalidated: version bumped to {new_version}")
        return new_version
