"""Redis-backed sliding window rate limiter shared by every service replica."""

from __future__ import annotations

import time
from typing import Callable, Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisSlidingWindowRateLimiter:
    """Sliding window limiter on Redis sorted sets, one set per limited key."""

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local seq_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local limit = tonumber(ARGV[2])
    local now_ms = tonumber(ARGV[3])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    if redis.call('ZCARD', key) >= limit then
        return 0
    end
    local seq = redis.call('INCR', seq_key)
    redis.call('PEXPIRE', seq_key, window_ms)
    redis.call('ZADD', key, now_ms, now_ms .. ':' .. seq)
    redis.call('PEXPIRE', key, window_ms)
    return 1
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "auth:rate",
        time_source: Callable[[], float] = time.time,
    ) -> None:
        """Bind the Redis client and register the Lua script."""
        self._client = client
        self._max_requests = max_requests
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._time = time_source
        self._script = client.register_script(self._LUA_SCRIPT)

    def allow(self, key: str) -> bool:
        """Return ``True`` when the key is still within the distributed rate limit."""
        now_ms = int(self._time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        try:
            result = self._script(keys=[redis_key], args=[self._window_ms, self._max_requests, now_ms])
        except ResponseError as exc:
            # some Redis-compatible servers ship without scripting
            message = str(exc).lower()
            if "unknown command `evalsha`" not in message and "unknown command `eval`" not in message:
                raise
            return self._allow_without_script(redis_key, now_ms)
        return int(result) == 1

    def _allow_without_script(self, redis_key: str, now_ms: int) -> bool:
        pipe = self._client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        pipe.zcard(redis_key)
        _, current = pipe.execute()
        if current >= self._max_requests:
            return False
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return True
