"""Per-client request quotas shared through Redis, with a per-process fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request
import redis.asyncio as redis

from config import settings

logger = logging.getLogger(__name__)

RATE_KEY_PREFIX = "streamhub:rate"

_local_counters: Dict[str, Tuple[int, float]] = {}
_local_lock = asyncio.Lock()


def client_identifier(request: Request) -> str:
    """
    Address a quota is charged to.

    X-Forwarded-For is client-controlled, so it is only honoured when
    TRUST_PROXY_HEADERS says a proxy in front of the API rewrites it.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def _count_in_redis(key: str, window_seconds: int) -> int:
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        current = await client.incr(key)
        if current == 1:
            await client.expire(key, window_seconds)
        return current
    finally:
        await client.aclose()


async def _count_locally(key: str, window_seconds: int) -> int:
    now = time.time()
    async with _local_lock:
        count, reset_at = _local_counters.get(key, (0, now + window_seconds))
        if now >= reset_at:
            count, reset_at = 0, now + window_seconds
        count += 1
        _local_counters[key] = (count, reset_at)
        return count


def rate_limit(prefix: str, limit: int, window_seconds: int) -> Callable[[Request], None]:
    """FastAPI dependency allowing `limit` calls per client per fixed window."""

    async def _dependency(request: Request):
        if getattr(request.app.state, "disable_rate_limits", False):
            return

        key = f"{RATE_KEY_PREFIX}:{prefix}:{client_identifier(request)}"
        try:
            count = await _count_in_redis(key, window_seconds)
        except Exception as exc:
            logger.debug("Redis unavailable for %s, counting in-process: %s", key, exc)
            count = await _count_locally(key, window_seconds)

        if count > limit:
            logger.warning("Rate limit hit: %s (%d/%d)", key, count, limit)
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded for {prefix}. Try again later.",
            )

    return _dependency
