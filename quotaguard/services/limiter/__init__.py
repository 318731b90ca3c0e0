"""Distributed fixed-window rate limiting using Redis.

This package provides the key layout, bucket models, store backends and the
limiter that runs the check-and-consume protocol against them.
"""

from .keys import KeyNamespace
from .models import BucketKeys, BucketState, DecrementOutcome, LimiterState, LimitResult
from .redis_lua import CREATE_BUCKET_SCRIPT, DECREMENT_IF_POSITIVE_SCRIPT
from .service import (
    RedisLimiter,
    get_limiter,
    init_limiter,
    reset_limiter,
    set_limiter,
)
from .store import BucketStore, InMemoryBucketStore, RedisBucketStore

__all__ = [
    "KeyNamespace",
    "BucketKeys",
    "BucketState",
    "DecrementOutcome",
    "LimiterState",
    "LimitResult",
    "CREATE_BUCKET_SCRIPT",
    "DECREMENT_IF_POSITIVE_SCRIPT",
    "RedisLimiter",
    "get_limiter",
    "init_limiter",
    "reset_limiter",
    "set_limiter",
    "BucketStore",
    "InMemoryBucketStore",
    "RedisBucketStore",
]
