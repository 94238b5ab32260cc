from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol

from relohire.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    limit: int
    remaining: int
    count: int
    window_reset_epoch: int
    limiter_key: str
    window_seconds: int


class RateLimiter(Protocol):
    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        ...


class NoopRateLimiter:
    """Always allows. Used when RATE_LIMIT_ENABLED is off."""

    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        now_ts = int(now or time.time())
        return RateLimitResult(
            allowed=True,
            retry_after_seconds=0,
            limit=limit,
            remaining=max(0, limit),
            count=0,
            window_reset_epoch=now_ts + window_seconds,
            limiter_key=f"noop:{route_key}:window:{window_seconds}",
            window_seconds=window_seconds,
        )


class FixedWindowRateLimiter:
    """
    In-process fixed-window counter keyed by (route, identifier, window start).
    Counts are per process; run behind sticky sessions or accept per-instance limits.
    """

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str, int], int] = {}
        self._lock = threading.Lock()

    def _prune(self, now_ts: int) -> None:
        stale = [k for k in self._counts if k[2] <= now_ts - 2 * 86400]
        for k in stale:
            self._counts.pop(k, None)

    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        now_ts = int(now or time.time())
        window_start = now_ts - (now_ts % window_seconds)
        reset_epoch = window_start + window_seconds
        key = (route_key, identifier, window_start)

        with self._lock:
            if len(self._counts) > 10_000:
                self._prune(now_ts)
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count

        allowed = count <= limit
        return RateLimitResult(
            allowed=allowed,
            retry_after_seconds=0 if allowed else max(1, reset_epoch - now_ts),
            limit=limit,
            remaining=max(0, limit - count),
            count=count,
            window_reset_epoch=reset_epoch,
            limiter_key=f"route:{route_key}:window:{window_seconds}",
            window_seconds=window_seconds,
        )


_limiter: RateLimiter | None = None
_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    global _limiter
    if _limiter is not None:
        return _limiter
    with _lock:
        if _limiter is None:
            _limiter = _build_rate_limiter()
    return _limiter


def reset_rate_limiter() -> None:
    """
    Test helper to ensure a fresh limiter instance is constructed after settings change.
    """

    global _limiter
    with _lock:
        _limiter = None


def _build_rate_limiter() -> RateLimiter:
    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting disabled via RATE_LIMIT_ENABLED=false; using NoopRateLimiter")
        return NoopRateLimiter()
    logger.info("Rate limiting enabled (in-process fixed window)")
    return FixedWindowRateLimiter()
