"""Per-connection token bucket guarding send-message against floods."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict

from .config import Settings


@dataclass
class _Bucket:
    capacity: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    def consume(self, now: float, amount: float = 1.0) -> bool:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now
        if self.tokens >= amount:
            self.tokens -= amount
            return True
        return False


class ConnectionRateLimiter:
    """One bucket per connection, dropped when the connection closes."""

    def __init__(self, settings: Settings, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._enabled = settings.rate_limit_enabled
        self._capacity = float(settings.rate_limit_burst)
        self._refill_rate = float(settings.rate_limit_rps)
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}

    def allow(self, connection_id: str) -> bool:
        if not self._enabled:
            return True
        now = self._clock()
        bucket = self._buckets.get(connection_id)
        if bucket is None:
            bucket = _Bucket(
                capacity=self._capacity,
                refill_rate=self._refill_rate,
                tokens=self._capacity,
                last_refill=now,
            )
            self._buckets[connection_id] = bucket
        return bucket.consume(now)

    def forget(self, connection_id: str) -> None:
        self._buckets.pop(connection_id, None)
