from __future__ import annotations

import json
import logging
from typing import Callable

from fastapi import HTTPException, Request, status

from relohire.core.config import settings
from relohire.services.rate_limiter import RateLimitResult, get_rate_limiter

logger = logging.getLogger(__name__)


def require_rate_limit(
    route_key: str,
    *,
    limit: int | None = None,
    window_seconds: int | None = None,
) -> Callable:
    """
    Dependency factory. Limits are resolved per request so tests and operators
    can change settings without re-importing routes.
    """

    async def dependency(request: Request) -> None:
        _enforce(
            request,
            route_key=route_key,
            limit=limit or settings.RATE_LIMIT_DEFAULT_MAX_REQUESTS,
            window_seconds=window_seconds or settings.RATE_LIMIT_DEFAULT_WINDOW_SECONDS,
        )

    return dependency


def require_auth_rate_limit() -> Callable:
    async def dependency(request: Request) -> None:
        _enforce(
            request,
            route_key="auth",
            limit=settings.RATE_LIMIT_AUTH_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_AUTH_WINDOW_SECONDS,
        )

    return dependency


def _enforce(request: Request, *, route_key: str, limit: int, window_seconds: int) -> None:
    result = get_rate_limiter().check(
        identifier=_resolve_identifier(request),
        route_key=route_key,
        limit=max(1, int(limit)),
        window_seconds=max(1, int(window_seconds)),
    )
    _log_decision(request=request, result=result, route_key=route_key)
    if result.allowed:
        return

    retry_after = max(1, result.retry_after_seconds)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "message": "Too many requests, please try again later",
            "details": {
                "retry_after_seconds": retry_after,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        },
        headers={"Retry-After": str(retry_after)},
    )


def _resolve_identifier(request: Request) -> str:
    user = getattr(request.state, "user", None)
    if user is not None and getattr(user, "id", None):
        return f"user:{user.id}"

    client = request.client
    host = (client.host if client else None) or "unknown"
    return f"ip:{host}"


def _log_decision(*, request: Request, result: RateLimitResult, route_key: str) -> None:
    user = getattr(request.state, "user", None)
    payload = {
        "user_id": getattr(user, "id", None),
        "route": request.url.path,
        "http_method": request.method,
        "route_key": route_key,
        "limiter_key": result.limiter_key,
        "window_seconds": result.window_seconds,
        "limit": result.limit,
        "current_count": result.count,
        "remaining": result.remaining,
        "reset_epoch": result.window_reset_epoch,
        "decision": "allow" if result.allowed else "block",
    }
    logger.info(json.dumps(payload, separators=(",", ":")))
