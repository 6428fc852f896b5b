"""
Token-bucket rate limiter keyed by caller identity.

The limiter holds its own bucket state; whoever builds it owns it and passes it
to the code that needs it. Nothing here is module-level mutable state.
"""

import math
import os
import time
from dataclasses import dataclass
from typing import Callable

from shared.errors import RateLimitExceeded

DEFAULT_CAPACITY = 100
DEFAULT_REFILL_PER_SEC = 100 / 900  # 100 requests per 15 minutes
DEFAULT_MAX_IDENTITIES = 10_000


@dataclass
class TokenBucket:
    tokens: float
    updated_at: float


class RateLimiter:
    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        refill_per_sec: float = DEFAULT_REFILL_PER_SEC,
        clock: Callable[[], float] = time.monotonic,
        max_identities: int = DEFAULT_MAX_IDENTITIES,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_per_sec <= 0:
            raise ValueError("refill_per_sec must be positive")
        if max_identities < 1:
            raise ValueError("max_identities must be at least 1")
        self.capacity = capacity
        self.refill_per_sec = refill_per_sec
        self.max_identities = max_identities
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}

    @classmethod
    def from_env(cls) -> "RateLimiter":
        capacity = int(os.environ.get("RATE_LIMIT_CAPACITY") or DEFAULT_CAPACITY)
        refill = float(os.environ.get("RATE_LIMIT_REFILL_PER_SEC") or DEFAULT_REFILL_PER_SEC)
        max_identities = int(os.environ.get("RATE_LIMIT_MAX_IDENTITIES") or DEFAULT_MAX_IDENTITIES)
        return cls(capacity=capacity, refill_per_sec=refill, max_identities=max_identities)

    def __len__(self) -> int:
        return len(self._buckets)

    def _make_room(self) -> None:
        # Full buckets carry no state worth keeping; after that, evict the least recently seen.
        if len(self._buckets) < self.max_identities:
            return
        self.prune()
        while len(self._buckets) >= self.max_identities:
            stalest = min(self._buckets, key=lambda identity: self._buckets[identity].updated_at)
            del self._buckets[stalest]

    def _tokens_at(self, bucket: TokenBucket, now: float) -> float:
        elapsed = max(0.0, now - bucket.updated_at)
        return min(float(self.capacity), bucket.tokens + elapsed * self.refill_per_sec)

    def _refill(self, identity: str) -> TokenBucket:
        now = self._clock()
        bucket = self._buckets.get(identity)
        if bucket is None:
            self._make_room()
            bucket = TokenBucket(tokens=float(self.capacity), updated_at=now)
            self._buckets[identity] = bucket
            return bucket
        bucket.tokens = self._tokens_at(bucket, now)
        bucket.updated_at = now
        return bucket

    def try_acquire(self, identity: str, cost: float = 1.0) -> bool:
        bucket = self._refill(identity)
        if bucket.tokens < cost:
            return False
        bucket.tokens -= cost
        return True

    def remaining(self, identity: str) -> int:
        return int(self._refill(identity).tokens)

    def retry_after(self, identity: str, cost: float = 1.0) -> int:
        """Seconds until `cost` tokens are available again."""
        missing = cost - self._refill(identity).tokens
        if missing <= 0:
            return 0
        return math.ceil(missing / self.refill_per_sec)

    def check(self, identity: str, cost: float = 1.0) -> None:
        """
        Consume tokens for `identity`.

        Raises:
            RateLimitExceeded: When the bucket does not hold enough tokens.
        """
        if not self.try_acquire(identity, cost):
            raise RateLimitExceeded(
                identity,
                self.retry_after(identity, cost),
                limit=self.capacity,
                remaining=self.remaining(identity),
            )

    def prune(self) -> int:
        """Drop buckets that have refilled to capacity. Returns how many were removed."""
        now = self._clock()
        full = [
            identity for identity, bucket in self._buckets.items()
            if self._tokens_at(bucket, now) >= self.capacity
        ]
        for identity in full:
            del self._buckets[identity]
        return len(full)
