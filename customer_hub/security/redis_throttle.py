"""Redis-backed sliding window login throttle."""

from __future__ import annotations

import math
import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError

from .throttle import ThrottleDecision


class RedisLoginThrottle:
    """Throttle shared across replicas, stored as one sorted set per key."""

    # Returns 0 when the attempt is recorded, otherwise milliseconds until
    # the oldest attempt leaves the window.
    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local seq_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= max_requests then
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        local wait = tonumber(oldest[2]) + window_ms - now_ms
        if wait < 1 then
            wait = 1
        end
        return wait
    end
    local seq = redis.call('INCR', seq_key)
    redis.call('PEXPIRE', seq_key, window_ms)
    redis.call('ZADD', key, now_ms, tostring(now_ms) .. ':' .. tostring(seq))
    redis.call('PEXPIRE', key, window_ms)
    return 0
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "login-throttle",
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def check(self, key: str) -> ThrottleDecision:
        """Record an attempt for ``key`` unless the shared window is already full."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        try:
            wait_ms = int(
                self._script(keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms])
            )
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                wait_ms = self._check_without_lua(redis_key, now_ms)
            else:
                raise
        if wait_ms <= 0:
            return ThrottleDecision(True)
        return ThrottleDecision(False, max(1, math.ceil(wait_ms / 1000)))

    def _check_without_lua(self, redis_key: str, now_ms: int) -> int:
        """Non-atomic equivalent of the Lua script for servers without scripting."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        if self._client.zcard(redis_key) >= self._max_requests:
            oldest = self._client.zrange(redis_key, 0, 0, withscores=True)
            oldest_ms = int(oldest[0][1]) if oldest else now_ms
            return max(1, oldest_ms + self._window_ms - now_ms)
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return 0
