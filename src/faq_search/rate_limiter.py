"""
Token-bucket rate limiting for calls to the embedding backend.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .config import DEFAULT_RATE_LIMITS


logger = logging.getLogger(__name__)


@dataclass
class RateBucket:
    """Mutable token bucket for one provider."""

    tokens: float
    capacity: int
    refill_per_minute: int
    last_refill: float


class RateLimiter:
    """Per-provider token buckets with lazy, time-based refill."""

    def __init__(
        self,
        limits: dict[str, tuple[int, int]] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, RateBucket] = {}
        now = self._clock()
        for provider, (capacity, refill) in (limits or DEFAULT_RATE_LIMITS).items():
            if capacity < 1 or refill < 1:
                raise ValueError(
                    f"Rate limit for {provider!r} needs positive capacity and refill rate."
                )
            self._buckets[provider] = RateBucket(
                tokens=float(capacity),
                capacity=capacity,
                refill_per_minute=refill,
                last_refill=now,
            )

    @property
    def providers(self) -> list[str]:
        return sorted(self._buckets)

    def check_rate_limit(self, provider: str) -> bool:
        """Consume one token for *provider*; return whether the call is allowed."""
        with self._lock:
            bucket = self._buckets.get(provider)
            if bucket is None:
                logger.error("Unknown rate limit provider: %s", provider)
                return False
            self._refill(bucket)
            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True
            logger.debug("Rate limit reached for %s", provider)
            return False

    def remaining_tokens(self, provider: str) -> int:
        with self._lock:
            bucket = self._buckets.get(provider)
            if bucket is None:
                logger.error("Unknown rate limit provider: %s", provider)
                return 0
            self._refill(bucket)
            return int(math.floor(bucket.tokens))

    def time_until_refill(self, provider: str) -> int:
        """Seconds until the next token is added to *provider*'s bucket."""
        with self._lock:
            bucket = self._buckets.get(provider)
            if bucket is None:
                logger.error("Unknown rate limit provider: %s", provider)
                return 0
            self._refill(bucket)
            seconds_per_token = 60.0 / bucket.refill_per_minute
            elapsed = self._clock() - bucket.last_refill
            remaining = seconds_per_token - (elapsed % seconds_per_token)
            return int(math.ceil(remaining))

    def reset(self, provider: str) -> None:
        with self._lock:
            bucket = self._buckets.get(provider)
            if bucket is None:
                logger.error("Unknown rate limit provider: %s", provider)
                return
            bucket.tokens = float(bucket.capacity)
            bucket.last_refill = self._clock()

    def _refill(self, bucket: RateBucket) -> None:
        now = self._clock()
        elapsed = now - bucket.last_refill
        if elapsed <= 0:
            return
        tokens_to_add = math.floor(elapsed * bucket.refill_per_minute / 60.0)
        if tokens_to_add <= 0:
            return
        bucket.tokens = min(float(bucket.capacity), bucket.tokens + tokens_to_add)
        if bucket.tokens >= bucket.capacity:
            bucket.last_refill = now
        else:
            # Keep the partial progress toward the next token.
            bucket.last_refill += tokens_to_add * 60.0 / bucket.refill_per_minute
