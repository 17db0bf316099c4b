# workbook/services/unlock_attempts.py
import logging
import time
from typing import Awaitable, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from workbook.cache.connection import RETRY_AFTER_SECONDS, get_redis
from workbook.config import gate_settings, redis_settings
from workbook.constants import RedisKeys

_log = logging.getLogger(__name__)

RedisGetter = Callable[[], Awaitable[Optional[aioredis.Redis]]]


class UnlockAttemptCounter:
    """
    Counts failed step-password attempts per (user, step) in Redis.

    Fails open: when Redis is unreachable every method returns None/False and
    logs, so the password gate keeps working and callers fall back to the
    client's own count. After a connection failure Redis is skipped for
    `backoff_seconds`.
    """
    def __init__(
        self,
        redis_getter: RedisGetter = get_redis,
        key_prefix: str = redis_settings.key_prefix,
        ttl_seconds: int = gate_settings.attempt_ttl_seconds,
        backoff_seconds: float = RETRY_AFTER_SECONDS,
    ):
        self._get_redis = redis_getter
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds
        self.backoff_seconds = backoff_seconds
        self._skip_until = 0.0

    def _key(self, user_id: str, step_number: int) -> str:
        return f"{self.key_prefix}:{RedisKeys.UNLOCK_ATTEMPTS.value}:{user_id}:{step_number}"

    async def _redis(self) -> Optional[aioredis.Redis]:
        if time.monotonic() < self._skip_until:
            return None
        return await self._get_redis()

    def _handle_error(self, action: str, user_id: str, step_number: int, error: RedisError) -> None:
        _log.warning(f"Failed to {action} unlock attempts for user {user_id} step {step_number}: {error}")
        if isinstance(error, (RedisConnectionError, RedisTimeoutError)):
            self._skip_until = time.monotonic() + self.backoff_seconds

    async def record_failure(self, user_id: str, step_number: int) -> Optional[int]:
        """Increments the counter and returns the new count, or None if unknown."""
        redis = await self._redis()
        if not redis:
            _log.warning(f"Unlock attempt for user {user_id} step {step_number} not counted: Redis unavailable.")
            return None
        key = self._key(user_id, step_number)
        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expire(key, self.ttl_seconds)
                count, _ = await pipe.execute()
            return int(count)
        except RedisError as e:
            self._handle_error("count", user_id, step_number, e)
            return None

    async def failures(self, user_id: str, step_number: int) -> Optional[int]:
        redis = await self._redis()
        if not redis:
            return None
        try:
            value = await redis.get(self._key(user_id, step_number))
        except RedisError as e:
            self._handle_error("read", user_id, step_number, e)
            return None
        return int(value) if value is not None else 0

    async def reset(self, user_id: str, step_number: int) -> bool:
        redis = await self._redis()
        if not redis:
            return False
        try:
            await redis.delete(self._key(user_id, step_number))
            return True
        except RedisError as e:
            self._handle_error("reset", user_id, step_number, e)
            return False
