"""Distributed fixed-window rate limiter backed by Redis."""

from quotaguard.exceptions import (
    CorruptedBucket,
    InitializationFailed,
    LimiterClosed,
    RateLimitError,
    RateLimitExceeded,
    StoreUnavailable,
)
from quotaguard.services.limiter import (
    InMemoryBucketStore,
    KeyNamespace,
    LimitResult,
    RedisBucketStore,
    RedisLimiter,
    init_limiter,
)

__all__ = [
    "CorruptedBucket",
    "InitializationFailed",
    "LimiterClosed",
    "RateLimitError",
    "RateLimitExceeded",
    "StoreUnavailable",
    "InMemoryBucketStore",
    "KeyNamespace",
    "LimitResult",
    "RedisBucketStore",
    "RedisLimiter",
    "init_limiter",
]
