"""Tests for the token-bucket rate limiter."""

from __future__ import annotations

import logging
import threading

import pytest

from faq_search.rate_limiter import RateLimiter

from .conftest import FakeClock


def _limiter(clock: FakeClock, capacity: int = 10, refill: int = 10) -> RateLimiter:
    return RateLimiter({"gemini": (capacity, refill)}, clock=clock)


def test_capacity_calls_allowed_then_denied(clock: FakeClock) -> None:
    limiter = _limiter(clock)

    allowed = [limiter.check_rate_limit("gemini") for _ in range(10)]

    assert all(allowed)
    assert limiter.check_rate_limit("gemini") is False
    assert limiter.remaining_tokens("gemini") == 0


def test_one_token_returns_after_refill_interval(clock: FakeClock) -> None:
    limiter = _limiter(clock)
    for _ in range(10):
        limiter.check_rate_limit("gemini")

    clock.advance(5.0)
    assert limiter.check_rate_limit("gemini") is False

    clock.advance(1.0)
    assert limiter.check_rate_limit("gemini") is True
    assert limiter.check_rate_limit("gemini") is False


def test_frequent_polling_does_not_starve_bucket(clock: FakeClock) -> None:
    limiter = _limiter(clock)
    for _ in range(10):
        limiter.check_rate_limit("gemini")

    # 4s, then 4s more: the second poll crosses the 6s token boundary.
    clock.advance(4.0)
    assert limiter.remaining_tokens("gemini") == 0
    clock.advance(4.0)
    assert limiter.remaining_tokens("gemini") == 1

    # The 2s of leftover progress is kept: 4s more completes the next token.
    clock.advance(4.0)
    assert limiter.remaining_tokens("gemini") == 2


def test_refill_is_capped_at_capacity(clock: FakeClock) -> None:
    limiter = _limiter(clock, capacity=3, refill=60)
    for _ in range(3):
        limiter.check_rate_limit("gemini")

    clock.advance(3600)

    assert limiter.remaining_tokens("gemini") == 3


def test_time_until_refill(clock: FakeClock) -> None:
    limiter = _limiter(clock)
    limiter.check_rate_limit("gemini")

    assert limiter.time_until_refill("gemini") == 6
    clock.advance(2.5)
    assert limiter.time_until_refill("gemini") == 4


def test_reset_restores_capacity(clock: FakeClock) -> None:
    limiter = _limiter(clock, capacity=2, refill=1)
    limiter.check_rate_limit("gemini")
    limiter.check_rate_limit("gemini")

    limiter.reset("gemini")

    assert limiter.remaining_tokens("gemini") == 2


def test_unknown_provider_is_logged_not_raised(clock: FakeClock, caplog) -> None:
    limiter = _limiter(clock)

    with caplog.at_level(logging.ERROR, logger="faq_search.rate_limiter"):
        assert limiter.check_rate_limit("anthropic") is False
        assert limiter.remaining_tokens("anthropic") == 0
        assert limiter.time_until_refill("anthropic") == 0
        limiter.reset("anthropic")

    assert "Unknown rate limit provider" in caplog.text


def test_default_buckets() -> None:
    limiter = RateLimiter()

    assert limiter.providers == ["gemini", "openai"]
    assert limiter.remaining_tokens("gemini") == 10
    assert limiter.remaining_tokens("openai") == 20


def test_invalid_limits_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimiter({"gemini": (0, 10)})


def test_concurrent_consumers_never_overdraw(clock: FakeClock) -> None:
    limiter = _limiter(clock, capacity=50, refill=1)
    granted: list[bool] = []
    lock = threading.Lock()

    def consume() -> None:
        for _ in range(20):
            result = limiter.check_rate_limit("gemini")
            with lock:
                granted.append(result)

    threads = [threading.Thread(target=consume) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(granted) == 50
