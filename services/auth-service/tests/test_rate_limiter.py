"""Tests for the in-memory and Redis-backed sliding window rate limiters."""

from __future__ import annotations

import fakeredis
import pytest
from redis.exceptions import ResponseError

from app.errors import RateLimitedError
from app.security.rate_limiter import SlidingWindowRateLimiter, enforce
from app.security.redis_rate_limiter import RedisSlidingWindowRateLimiter


class FakeTime:
    def __init__(self, start: float = 1_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value


@pytest.fixture()
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


def test_memory_limiter_blocks_excess_and_recovers(fake_time):
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, time_source=fake_time)
    assert limiter.allow("login:emma")
    assert limiter.allow("login:emma")
    assert not limiter.allow("login:emma")
    assert limiter.allow("login:sarah")

    fake_time.value += 60
    assert limiter.allow("login:emma")


def test_memory_limiter_evicts_idle_keys(fake_time):
    limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=60, time_source=fake_time)
    for index in range(1000):
        assert limiter.allow(f"login:user{index}")

    fake_time.value += 3600
    assert limiter.allow("login:fresh")
    assert list(limiter._events) == ["login:fresh"]


def test_memory_limiter_keeps_keys_inside_window(fake_time):
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, time_source=fake_time)
    assert limiter.allow("login:emma")
    fake_time.value += 61
    assert limiter.allow("login:sarah")
    fake_time.value += 30
    assert not limiter.allow("login:sarah")
    assert "login:emma" not in limiter._events


def test_enforce_raises_rate_limited(fake_time):
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, time_source=fake_time)
    enforce(limiter, "login", "Emma@Company.com")
    with pytest.raises(RateLimitedError):
        enforce(limiter, "login", "emma@company.com")


def test_redis_rate_limiter_allows_within_threshold(redis_client, fake_time):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=3, window_seconds=1, key_prefix="test", time_source=fake_time
    )
    assert all(limiter.allow("login:emma") for _ in range(3))


def test_redis_rate_limiter_blocks_excess(redis_client, fake_time):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=2, window_seconds=1, key_prefix="test", time_source=fake_time
    )
    assert limiter.allow("login:emma")
    assert limiter.allow("login:emma")
    assert not limiter.allow("login:emma")


def test_redis_rate_limiter_expires_entries(redis_client, fake_time):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=1, key_prefix="test", time_source=fake_time
    )
    assert limiter.allow("login:emma")
    assert not limiter.allow("login:emma")
    fake_time.value += 1.1
    assert limiter.allow("login:emma")


def test_redis_rate_limiter_falls_back_without_scripting(redis_client, fake_time):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=1, key_prefix="test", time_source=fake_time
    )

    def no_scripting(**_kwargs):
        raise ResponseError("unknown command `evalsha`, with args beginning with: ")

    limiter._script = no_scripting
    assert limiter.allow("login:emma")
    assert not limiter.allow("login:emma")


def test_redis_rate_limiter_propagates_other_errors(redis_client, fake_time):
    limiter = RedisSlidingWindowRateLimiter(
        redis_client, max_requests=1, window_seconds=1, key_prefix="test", time_source=fake_time
    )

    def broken(**_kwargs):
        raise ResponseError("unknown command `zadd`, with args beginning with: ")

    limiter._script = broken
    with pytest.raises(ResponseError):
        limiter.allow("login:emma")
