from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from typing import Any, Protocol

import redis
from cachetools import TLRUCache

from relohire.core.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def keys(self, pattern: str) -> list[str]:
        ...

    def exists(self, key: str) -> bool:
        ...


def _entry_expiry(key: str, value: tuple[str, int], now: float) -> float:
    return now + value[1]


class InMemoryCacheBackend:
    """
    Process-local backend used when REDIS_URL is not configured (dev, tests).
    Entries carry their own TTL.
    """

    def __init__(self, maxsize: int = 2048) -> None:
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=time.monotonic)
        self._lock = threading.RLock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._cache[key] = (value, max(1, int(ttl_seconds)))

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._cache.pop(key, None) is not None:
                    removed += 1
        return removed

    def keys(self, pattern: str) -> list[str]:
        with self._lock:
            self._cache.expire()
            return [k for k in list(self._cache.keys()) if fnmatch.fnmatchcase(k, pattern)]

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._cache.get(key) is not None


class RedisCacheBackend:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._client.setex(key, max(1, int(ttl_seconds)), value)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._client.delete(*keys))

    def keys(self, pattern: str) -> list[str]:
        return list(self._client.scan_iter(match=pattern))

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))


class CacheService:
    """
    Best-effort read-through cache. Values are JSON encoded; any backend error is
    logged and treated as a miss so callers fall back to the database.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self.backend = backend

    def get(self, key: str) -> Any | None:
        try:
            raw = self.backend.get(key)
        except Exception:  # noqa: BLE001
            logger.warning("Cache get failed for key %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Cache entry %s is not valid JSON; ignoring", key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        try:
            self.backend.set(key, json.dumps(value, default=str), ttl_seconds)
        except Exception:  # noqa: BLE001
            logger.warning("Cache set failed for key %s", key, exc_info=True)
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            return self.backend.delete(key) > 0
        except Exception:  # noqa: BLE001
            logger.warning("Cache delete failed for key %s", key, exc_info=True)
            return False

    def delete_pattern(self, pattern: str) -> int:
        try:
            keys = self.backend.keys(pattern)
            return self.backend.delete(*keys) if keys else 0
        except Exception:  # noqa: BLE001
            logger.warning("Cache delete_pattern failed for %s", pattern, exc_info=True)
            return 0

    def exists(self, key: str) -> bool:
        try:
            return self.backend.exists(key)
        except Exception:  # noqa: BLE001
            logger.warning("Cache exists failed for key %s", key, exc_info=True)
            return False

    # -------------------------
    # Named views
    # -------------------------
    def get_job_matches(self, user_id: int) -> Any | None:
        return self.get(job_matches_key(user_id))

    def set_job_matches(self, user_id: int, matches: Any) -> bool:
        return self.set(job_matches_key(user_id), matches, settings.CACHE_TTL_JOB_MATCHES)

    def invalidate_job_matches(self, user_id: int | None = None) -> int:
        if user_id is None:
            return self.delete_pattern("job_matches:*")
        return int(self.delete(job_matches_key(user_id)))

    def get_user_profile(self, user_id: int) -> Any | None:
        return self.get(user_profile_key(user_id))

    def set_user_profile(self, user_id: int, profile: Any) -> bool:
        return self.set(user_profile_key(user_id), profile, settings.CACHE_TTL_USER_PROFILE)

    def invalidate_user_profile(self, user_id: int) -> bool:
        return self.delete(user_profile_key(user_id))

    def get_questions(self, category: str) -> Any | None:
        return self.get(questions_key(category))

    def set_questions(self, category: str, questions: Any) -> bool:
        return self.set(questions_key(category), questions, settings.CACHE_TTL_QUESTIONS)

    def invalidate_questions(self, category: str | None = None) -> int:
        if category is None:
            return self.delete_pattern("questions:*")
        return int(self.delete(questions_key(category)))

    def get_job_stats(self) -> Any | None:
        return self.get(JOB_STATS_KEY)

    def set_job_stats(self, stats: Any) -> bool:
        return self.set(JOB_STATS_KEY, stats, settings.CACHE_TTL_JOB_STATS)

    def invalidate_job_stats(self) -> bool:
        return self.delete(JOB_STATS_KEY)


JOB_STATS_KEY = "job_stats"


def job_matches_key(user_id: int) -> str:
    return f"job_matches:{user_id}"


def user_profile_key(user_id: int) -> str:
    return f"user_profile:{user_id}"


def questions_key(category: str) -> str:
    return f"questions:{(category or 'general').strip().lower()}"


_cache: CacheService | None = None
_lock = threading.Lock()


def get_cache() -> CacheService:
    global _cache
    if _cache is not None:
        return _cache
    with _lock:
        if _cache is None:
            _cache = CacheService(_build_backend())
    return _cache


def reset_cache() -> None:
    """
    Test helper: drop the singleton so the next call rebuilds it from settings.
    """

    global _cache
    with _lock:
        _cache = None


def _build_backend() -> CacheBackend:
    if settings.REDIS_URL:
        logger.info("Cache using Redis at %s", settings.REDIS_URL.split("@")[-1])
        return RedisCacheBackend(redis.Redis.from_url(settings.REDIS_URL, decode_responses=True))
    logger.info("REDIS_URL is not set; using in-process cache")
    return InMemoryCacheBackend(maxsize=settings.CACHE_MAX_ENTRIES)
