"""
Read-through cache for direct booking-link pages, backed by Redis.

A link page (event details plus the tables the link can book, with event
overrides applied) is stored as JSON under "booking_link:{code}" for
REDIS_CACHE_TTL seconds. Nothing publishes table or link changes, so expiry
is the only invalidation. Submitting through a link re-reads the link and
availability from PostgreSQL; a stale page is at worst a stale display.

Redis is optional. With REDIS_ENABLED off, or while the server is
unreachable, reads are misses and writes are dropped. After a failed connect
the next attempt waits REDIS_RETRY_SECONDS instead of stalling every request.
"""

import json
import time
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import cache_operations, record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

KEY_PREFIX = "booking_link:"

_client: Optional[redis.Redis] = None
_next_attempt_at = 0.0


async def get_redis() -> Optional[redis.Redis]:
    """Shared client, or None when caching is off or Redis is down."""
    global _client, _next_attempt_at

    if not settings.REDIS_ENABLED:
        return None
    if _client is not None:
        return _client
    if time.monotonic() < _next_attempt_at:
        return None

    candidate = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await candidate.ping()
    except (RedisError, OSError) as e:
        _next_attempt_at = time.monotonic() + settings.REDIS_RETRY_SECONDS
        logger.warning("redis_connect_failed", error=str(e), retry_in=settings.REDIS_RETRY_SECONDS)
        await candidate.aclose()
        return None

    _client = candidate
    logger.info("redis_connected", url=settings.REDIS_URL)
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def booking_link_key(code: str) -> str:
    return f"{KEY_PREFIX}{code}"


async def get_cached_booking_link(code: str) -> Optional[dict[str, Any]]:
    client = await get_redis()
    if client is None:
        return None

    key = booking_link_key(code)
    try:
        raw = await client.get(key)
    except RedisError as e:
        cache_operations.labels(operation="get", result="error").inc()
        logger.warning("cache_read_failed", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=raw is not None)
    return json.loads(raw) if raw is not None else None


async def set_cached_booking_link(code: str, view: dict[str, Any]) -> None:
    client = await get_redis()
    if client is None:
        return

    key = booking_link_key(code)
    try:
        await client.set(key, json.dumps(view, default=str), ex=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        cache_operations.labels(operation="set", result="error").inc()
        logger.warning("cache_write_failed", key=key, error=str(e))


async def get_cache_stats() -> dict[str, Any]:
    """Health summary for the /health endpoint."""
    client = await get_redis()
    if client is None:
        return {"status": "disabled" if not settings.REDIS_ENABLED else "unavailable"}

    try:
        stats = await client.info("stats")
        link_keys = 0
        async for _ in client.scan_iter(match=f"{KEY_PREFIX}*", count=200):
            link_keys += 1
    except RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = stats.get("keyspace_hits", 0)
    misses = stats.get("keyspace_misses", 0)
    lookups = hits + misses
    return {
        "status": "connected",
        "cached_links": link_keys,
        "hit_rate": round(hits / lookups * 100, 2) if lookups else None,
    }
