"""Fixed-window rate limiting backed by a shared store.

Every instance reads and writes the same three keys per identifier, so the
limit is global across processes. Windows end by key expiry, never by
explicit deletion.
"""

import time
from typing import Callable, Optional

from quotaguard.core.config import settings
from quotaguard.core.logging import get_log_context, get_logger
from quotaguard.exceptions import (
    InitializationFailed,
    LimiterClosed,
    StoreUnavailable,
)
from quotaguard.services.limiter.keys import KeyNamespace
from quotaguard.services.limiter.models import (
    BucketState,
    LimiterState,
    LimitResult,
)
from quotaguard.services.limiter.store import BucketStore, RedisBucketStore

logger = get_logger(__name__)


class RedisLimiter:
    """Fixed-window limiter over a BucketStore.

    Holds no per-identifier state in process: the store is the sole
    authority, and concurrency between callers is resolved by its atomic
    create-only and decrement-if-positive primitives. Safe to share across
    tasks without locking.

    Bucket lifecycle:
    - first call in a window creates quota/remaining/reset with one TTL and
      counts that call (remaining = quota - 1)
    - later calls decrement remaining until it reaches 0
    - calls with remaining == 0 change nothing and report allowed=False
    - the keys expire together at reset_at, starting a new window
    """

    DEFAULT_QUOTA = 5000
    DEFAULT_WINDOW_SECONDS = 3600
    MAX_ATTEMPTS = 3

    def __init__(
        self,
        store: BucketStore,
        quota: int = DEFAULT_QUOTA,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        namespace: Optional[KeyNamespace] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if quota < 1:
            raise ValueError(f"quota must be at least 1, got {quota}")
        if window_seconds < 1:
            raise ValueError(f"window_seconds must be at least 1, got {window_seconds}")
        self._store = store
        self.quota = quota
        self.window_seconds = window_seconds
        self.namespace = namespace or KeyNamespace()
        self._clock = clock
        self._state = LimiterState.UNINITIALIZED

    @property
    def state(self) -> LimiterState:
        return self._state

    @property
    def store(self) -> BucketStore:
        return self._store

    async def init(self) -> "RedisLimiter":
        """Probe the store and become READY.

        A failed probe is terminal for this instance: the pool is released
        and the limiter moves to CLOSED. Build a new limiter to retry.

        Raises:
            InitializationFailed: The probe failed or the limiter was closed.
        """
        if self._state is LimiterState.CLOSED:
            raise InitializationFailed("Limiter has been closed and cannot be reinitialized")
        if self._state is LimiterState.READY:
            return self
        try:
            await self._store.ping()
        except StoreUnavailable as e:
            logger.error(f"Rate limiter store is unreachable: {e}")
            self._state = LimiterState.CLOSED
            await self._release_store()
            raise InitializationFailed(f"Store liveness probe failed: {e.message}") from e
        self._state = LimiterState.READY
        logger.info(
            f"Rate limiter ready: {self.quota} requests per {self.window_seconds}s"
        )
        return self

    async def close(self) -> None:
        """Release pooled connections. Calling close() twice is a no-op."""
        if self._state is LimiterState.CLOSED:
            return
        self._state = LimiterState.CLOSED
        await self._store.close()
        logger.info("Rate limiter closed")

    async def _release_store(self) -> None:
        try:
            await self._store.close()
        except StoreUnavailable as e:
            logger.warning(f"Error closing store after failed init: {e}")

    async def __aenter__(self) -> "RedisLimiter":
        return await self.init()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_ready(self) -> None:
        if self._state is LimiterState.CLOSED:
            raise LimiterClosed()
        if self._state is LimiterState.UNINITIALIZED:
            raise InitializationFailed("Limiter used before init()")

    async def check_and_consume(self, identifier: str) -> LimitResult:
        """Count one request for identifier and report its quota.

        Raises:
            StoreUnavailable: The store failed, or the bucket kept
                changing underneath every attempt.
            CorruptedBucket: Stored values are malformed.
            LimiterClosed: Called after close().
        """
        self._ensure_ready()
        keys = self.namespace.keys_for(identifier)
        candidate_reset_at = int(self._clock()) + self.window_seconds

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            bucket = BucketState.parse(keys, *await self._store.fetch(keys))

            if bucket is None:
                created = await self._store.create(
                    keys, self.quota, candidate_reset_at, self.window_seconds
                )
                if created:
                    logger.debug(
                        f"Created bucket for {identifier!r}, resets at {candidate_reset_at}",
                        extra=get_log_context(identifier=identifier, operation="create"),
                    )
                    return LimitResult.from_values(
                        self.quota, self.quota - 1, candidate_reset_at
                    )
                # Another caller created it first; count against theirs.
                logger.debug(
                    f"Lost bucket creation race for {identifier!r} (attempt {attempt})",
                    extra=get_log_context(identifier=identifier, operation="create"),
                )
                continue

            if bucket.remaining == 0:
                return LimitResult.from_values(
                    bucket.quota, 0, bucket.reset_at, allowed=False
                )

            outcome = await self._store.decrement(keys)
            if outcome is None:
                # Window expired between read and decrement.
                continue
            return LimitResult.from_values(
                bucket.quota, outcome.remaining, bucket.reset_at, allowed=outcome.applied
            )

        logger.warning(
            f"Bucket for {identifier!r} changed on every attempt",
            extra=get_log_context(identifier=identifier, attempts=self.MAX_ATTEMPTS),
        )
        raise StoreUnavailable(
            "check_and_consume",
            keys.remaining,
            f"bucket changed concurrently on all {self.MAX_ATTEMPTS} attempts",
        )


async def init_limiter(
    store_address: Optional[str] = None,
    quota: Optional[int] = None,
    window_seconds: Optional[int] = None,
    key_prefix: Optional[str] = None,
    **store_options,
) -> RedisLimiter:
    """Connect to Redis and return a READY limiter.

    Args:
        store_address: Redis URL; defaults to settings.redis_url
        quota: Requests per window; defaults to settings.rate_limit_quota
        window_seconds: Window length; defaults to settings.rate_limit_window_seconds
        key_prefix: Key namespace prefix; defaults to settings.rate_limit_key_prefix
        **store_options: Pool and timeout options for RedisBucketStore

    Raises:
        ValueError: quota or window_seconds is not positive.
        InitializationFailed: Redis did not answer the liveness probe.
    """
    store = RedisBucketStore(redis_url=store_address, **store_options)
    limiter = RedisLimiter(
        store,
        quota=quota if quota is not None else settings.rate_limit_quota,
        window_seconds=(
            window_seconds if window_seconds is not None else settings.rate_limit_window_seconds
        ),
        namespace=KeyNamespace(
            key_prefix if key_prefix is not None else settings.rate_limit_key_prefix
        ),
    )
    return await limiter.init()


_limiter: Optional[RedisLimiter] = None


async def get_limiter() -> RedisLimiter:
    """Get the global limiter instance, initializing it from settings."""
    global _limiter
    if _limiter is None or _limiter.state is LimiterState.CLOSED:
        _limiter = await init_limiter()
    return _limiter


def set_limiter(limiter: Optional[RedisLimiter]) -> None:
    """Install a limiter as the global instance."""
    global _limiter
    _limiter = limiter


def reset_limiter() -> None:
    """Reset the global limiter instance."""
    global _limiter
    _limiter = None
