"""Store backends holding rate limit buckets.

Provides the abstract bucket store used by the limiter with a Redis
implementation for multi-instance deployments and an in-memory one for
single-process use and tests.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from quotaguard.core.config import settings
from quotaguard.core.logging import get_log_context, get_logger
from quotaguard.exceptions import CorruptedBucket, StoreUnavailable
from quotaguard.services.limiter.models import BucketKeys, DecrementOutcome, parse_int
from quotaguard.services.limiter.redis_lua import (
    CREATE_BUCKET_SCRIPT,
    DECREMENT_IF_POSITIVE_SCRIPT,
    STATUS_CORRUPTED,
    STATUS_DECREMENTED,
    STATUS_MISSING,
)

logger = get_logger(__name__)

T = TypeVar("T")

RawBucket = tuple[Optional[str], Optional[str], Optional[str]]


class BucketStore(ABC):
    """Abstract base class for bucket stores.

    Implementations must make create() all-or-nothing and create-only, and
    decrement() conditional on the counter being positive.
    """

    @abstractmethod
    async def ping(self) -> None:
        """Check the store is reachable.

        Raises:
            StoreUnavailable: If the store does not answer.
        """

    @abstractmethod
    async def fetch(self, keys: BucketKeys) -> RawBucket:
        """Read quota, remaining and reset in one round trip.

        Returns:
            Raw values in key order, None for missing keys.
        """

    @abstractmethod
    async def create(self, keys: BucketKeys, quota: int, reset_at: int, ttl: int) -> bool:
        """Create a bucket with its first request already consumed.

        Args:
            keys: Bucket keys
            quota: Window ceiling
            reset_at: Epoch seconds at which the window ends
            ttl: Time-to-live in seconds applied to all three keys

        Returns:
            True if the bucket was created, False if any key already existed.
        """

    @abstractmethod
    async def decrement(self, keys: BucketKeys) -> Optional[DecrementOutcome]:
        """Decrement remaining if it is positive.

        Returns:
            The outcome, or None if the remaining key no longer exists.

        Raises:
            CorruptedBucket: If the stored counter is not an integer.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the store."""


class RedisBucketStore(BucketStore):
    """Redis-backed bucket store.

    Connections come from a bounded BlockingConnectionPool: acquisition
    waits at most pool_timeout, idle connections are health-checked with
    PING before reuse, and every command is bounded by operation_timeout.

    Example:
        >>> store = RedisBucketStore("redis://localhost:6379/0")
        >>> await store.ping()
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client: Optional[Any] = None,
        max_connections: Optional[int] = None,
        pool_timeout: Optional[float] = None,
        socket_timeout: Optional[float] = None,
        socket_connect_timeout: Optional[float] = None,
        health_check_interval: Optional[int] = None,
        operation_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the Redis bucket store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            redis_client: Pre-built client, closed together with the store
            max_connections: Pool size
            pool_timeout: Seconds to wait for a free pooled connection
            socket_timeout: Per-command socket timeout
            socket_connect_timeout: Timeout for establishing a connection
            health_check_interval: Idle seconds after which a connection is
                PINGed before reuse
            operation_timeout: Upper bound for each store round trip
        """
        self._redis_url = redis_url or settings.redis_url
        self._redis = redis_client
        self._pool: Optional[aioredis.BlockingConnectionPool] = None
        self._max_connections = max_connections or settings.redis_max_connections
        self._pool_timeout = pool_timeout or settings.redis_pool_timeout
        self._socket_timeout = socket_timeout or settings.redis_socket_timeout
        self._socket_connect_timeout = (
            socket_connect_timeout or settings.redis_socket_connect_timeout
        )
        self._health_check_interval = (
            health_check_interval
            if health_check_interval is not None
            else settings.redis_health_check_interval
        )
        self._operation_timeout = operation_timeout or settings.rate_limit_operation_timeout

    @property
    def redis_url(self) -> str:
        return self._redis_url

    def _get_redis(self) -> Any:
        """Get or create the pooled Redis client."""
        if self._redis is not None:
            return self._redis
        try:
            self._pool = aioredis.BlockingConnectionPool.from_url(
                self._redis_url,
                max_connections=self._max_connections,
                timeout=self._pool_timeout,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                health_check_interval=self._health_check_interval,
                decode_responses=True,
            )
        except ValueError as e:
            raise StoreUnavailable("connect", detail=f"invalid Redis URL: {e}") from e
        self._redis = aioredis.Redis(connection_pool=self._pool)
        return self._redis

    async def _run(
        self,
        operation: str,
        key: Optional[str],
        command: Callable[[Any], Awaitable[T]],
    ) -> T:
        """Run one bounded round trip, mapping failures to StoreUnavailable."""
        client = self._get_redis()
        try:
            return await asyncio.wait_for(command(client), timeout=self._operation_timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Redis {operation} timed out after {self._operation_timeout}s",
                extra=get_log_context(operation=operation, key=key),
            )
            raise StoreUnavailable(
                operation, key, f"timed out after {self._operation_timeout}s"
            ) from e
        except RedisError as e:
            logger.warning(
                f"Redis {operation} failed: {e}",
                extra=get_log_context(operation=operation, key=key),
            )
            raise StoreUnavailable(operation, key, str(e)) from e

    async def ping(self) -> None:
        pong = await self._run("ping", None, lambda r: r.ping())
        if not pong:
            raise StoreUnavailable("ping", detail="unexpected reply to PING")

    async def fetch(self, keys: BucketKeys) -> RawBucket:
        values = await self._run("mget", keys.quota, lambda r: r.mget(keys.as_list()))
        quota, remaining, reset = values
        return quota, remaining, reset

    async def create(self, keys: BucketKeys, quota: int, reset_at: int, ttl: int) -> bool:
        created = await self._run(
            "create",
            keys.quota,
            lambda r: r.eval(
                CREATE_BUCKET_SCRIPT,
                3,  # Number of keys
                keys.quota,  # KEYS[1]
                keys.remaining,  # KEYS[2]
                keys.reset,  # KEYS[3]
                quota,  # ARGV[1]
                quota - 1,  # ARGV[2]
                reset_at,  # ARGV[3]
                ttl,  # ARGV[4]
            ),
        )
        return int(created) == 1

    async def decrement(self, keys: BucketKeys) -> Optional[DecrementOutcome]:
        status, value = await self._run(
            "decrement",
            keys.remaining,
            lambda r: r.eval(DECREMENT_IF_POSITIVE_SCRIPT, 1, keys.remaining),
        )
        status = int(status)
        if status == STATUS_MISSING:
            return None
        if status == STATUS_CORRUPTED:
            raise CorruptedBucket(keys.remaining, f"expected an integer, got {value!r}")
        return DecrementOutcome(applied=status == STATUS_DECREMENTED, remaining=int(value))

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is None:
            return
        try:
            await self._redis.aclose()
            if self._pool is not None:
                await self._pool.disconnect()
        except RedisError as e:
            raise StoreUnavailable("close", detail=str(e)) from e
        finally:
            self._redis = None
            self._pool = None


@dataclass
class _Entry:
    """Internal store entry with TTL tracking."""

    value: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryBucketStore(BucketStore):
    """In-memory bucket store with TTL support.

    Data lives in one process and is lost on restart, so it only enforces
    a global limit for single-instance deployments.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._data: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._closed = False

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise StoreUnavailable(operation, detail="store is closed")

    def _get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._data[key]
            return None
        return entry.value

    async def ping(self) -> None:
        self._check_open("ping")

    async def fetch(self, keys: BucketKeys) -> RawBucket:
        self._check_open("mget")
        async with self._lock:
            return self._get(keys.quota), self._get(keys.remaining), self._get(keys.reset)

    async def create(self, keys: BucketKeys, quota: int, reset_at: int, ttl: int) -> bool:
        self._check_open("create")
        async with self._lock:
            if any(self._get(key) is not None for key in keys.as_list()):
                return False
            expires_at = self._clock() + ttl
            self._data[keys.quota] = _Entry(str(quota), expires_at)
            self._data[keys.remaining] = _Entry(str(quota - 1), expires_at)
            self._data[keys.reset] = _Entry(str(reset_at), expires_at)
            return True

    async def decrement(self, keys: BucketKeys) -> Optional[DecrementOutcome]:
        self._check_open("decrement")
        async with self._lock:
            raw = self._get(keys.remaining)
            if raw is None:
                return None
            current = parse_int(keys.remaining, raw)
            if current <= 0:
                return DecrementOutcome(applied=False, remaining=0)
            self._data[keys.remaining].value = str(current - 1)
            return DecrementOutcome(applied=True, remaining=current - 1)

    async def close(self) -> None:
        self._closed = True
        async with self._lock:
            self._data.clear()
