"""
Tests for the per-user analysis rate limiter in bot.py.

Covers:
  - Limits come from config (RATE_MAX_REQUESTS / RATE_WINDOW_SECS)
  - First N analyses accepted, (N+1)th rejected
  - Sliding window: old requests expire
  - Per-user isolation
"""
from __future__ import annotations

import time

import pytest

import config
from bot import RATE_MAX_REQUESTS, RATE_WINDOW_SECS, _is_rate_limited, _rate_buckets


@pytest.fixture(autouse=True)
def clear_buckets():
    _rate_buckets.clear()
    yield
    _rate_buckets.clear()


class TestRateLimiter:
    def test_limits_follow_config(self):
        assert RATE_MAX_REQUESTS == config.RATE_MAX_REQUESTS
        assert RATE_WINDOW_SECS == config.RATE_WINDOW_SECS

    def test_quota_then_rejection(self):
        uid = 100
        results = [_is_rate_limited(uid) for _ in range(RATE_MAX_REQUESTS + 1)]
        assert results == [False] * RATE_MAX_REQUESTS + [True]

    def test_rejected_attempts_do_not_grow_bucket(self):
        uid = 200
        for _ in range(RATE_MAX_REQUESTS * 3):
            _is_rate_limited(uid)
        assert len(_rate_buckets[uid]) == RATE_MAX_REQUESTS

    def test_users_independent(self):
        for _ in range(RATE_MAX_REQUESTS):
            _is_rate_limited(300)
        assert _is_rate_limited(300) is True
        assert _is_rate_limited(400) is False

    def test_window_expiry(self, monkeypatch):
        uid = 500
        clock = [1000.0]
        monkeypatch.setattr(time, "monotonic", lambda: clock[0])

        for _ in range(RATE_MAX_REQUESTS):
            _is_rate_limited(uid)
        assert _is_rate_limited(uid) is True

        clock[0] += RATE_WINDOW_SECS + 1
        assert _is_rate_limited(uid) is False
