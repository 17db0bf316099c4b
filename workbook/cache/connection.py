"""Shared redis.asyncio client, created on first use.

Redis only backs the unlock-attempt counter, so a missing or misconfigured
server yields None here and callers carry on without it.
"""
import asyncio
import logging
import time
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from workbook.config import redis_settings

_log = logging.getLogger(__name__)

# After a failed creation, wait this long before trying again
RETRY_AFTER_SECONDS = 30.0

_client: Optional[aioredis.Redis] = None
_failed_at: Optional[float] = None
_lock: Optional[asyncio.Lock] = None


def _get_lock() -> asyncio.Lock:
    global _lock
    if _lock is None:
        _lock = asyncio.Lock()
    return _lock


def _create_client(url: str) -> Optional[aioredis.Redis]:
    try:
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=2,
        )
    except (RedisError, ValueError) as exc:
        _log.error(f"Could not create Redis client for {url}, unlock attempts will not be counted ({exc})")
        return None
    _log.info(f"Redis client created for {url}")
    return client


async def get_redis() -> Optional[aioredis.Redis]:
    """Returns the shared client, or None while Redis is unavailable."""
    global _client, _failed_at
    if _client is not None:
        return _client
    if _failed_at is not None and time.monotonic() - _failed_at < RETRY_AFTER_SECONDS:
        return None

    async with _get_lock():
        if _client is None:
            _client = _create_client(redis_settings.url)
            _failed_at = None if _client is not None else time.monotonic()
    return _client


async def close_redis() -> None:
    """Closes and forgets the shared client."""
    global _client, _failed_at
    client, _client, _failed_at = _client, None, None
    if client is None:
        return
    try:
        await client.aclose()
        _log.info("Redis connection pool closed.")
    except RedisError as e:
        _log.warning(f"Error closing Redis connection: {e}")
