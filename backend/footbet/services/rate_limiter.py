"""
backend/footbet/services/rate_limiter.py

Purpose:
    Process-local token-bucket limiter keyed by provider name. API-Football
    plans are metered per minute; head-to-head lookups for the elite ruleset
    issue one request per fixture, so calls are spread out here instead of
    tripping 429s.

Dependencies:
    - asyncio
    - time
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field


@dataclass
class _Bucket:
    capacity: float
    refill_per_second: float
    tokens: float
    updated_at: float = field(default_factory=time.monotonic)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_second)
        self.updated_at = now


class RateLimiter:
    def __init__(self) -> None:
        self._buckets: dict[str, _Bucket] = {}

    def _bucket(self, key: str, rpm: int) -> _Bucket:
        capacity = max(1.0, float(rpm))
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(capacity=capacity, refill_per_second=capacity / 60.0, tokens=capacity)
            self._buckets[key] = bucket
        elif bucket.capacity != capacity:
            bucket.capacity = capacity
            bucket.refill_per_second = capacity / 60.0
            bucket.tokens = min(bucket.tokens, capacity)
        return bucket

    async def acquire(self, provider: str, rpm: int | None) -> None:
        """Wait until one request token is available (no-op when rpm <= 0)."""
        key = (provider or "").strip().lower()
        if not key or rpm is None or int(rpm) <= 0:
            return
        bucket = self._bucket(key, int(rpm))
        while True:
            async with bucket.lock:
                bucket.refill(time.monotonic())
                if bucket.tokens >= 1.0:
                    bucket.tokens -= 1.0
                    return
                wait = (1.0 - bucket.tokens) / bucket.refill_per_second
            await asyncio.sleep(min(wait, 1.0))

    def available(self, provider: str) -> float | None:
        bucket = self._buckets.get((provider or "").strip().lower())
        if bucket is None:
            return None
        bucket.refill(time.monotonic())
        return bucket.tokens


rate_limiter = RateLimiter()
