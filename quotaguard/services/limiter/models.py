"""Data models for the fixed-window limiter."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from quotaguard.exceptions import CorruptedBucket


class LimiterState(str, Enum):
    """Lifecycle of a limiter instance. CLOSED is terminal."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True)
class BucketKeys:
    """The three store keys that together make up one identifier's bucket."""
    quota: str
    remaining: str
    reset: str

    def as_list(self) -> list[str]:
        return [self.quota, self.remaining, self.reset]


INTEGER_PATTERN = re.compile(r"-?[0-9]+")


def parse_int(key: str, raw: str | bytes) -> int:
    """Parse a stored counter the way Redis INCR/DECR accept it.

    Signs other than a leading minus, whitespace and underscores are rejected.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or INTEGER_PATTERN.fullmatch(raw) is None:
        raise CorruptedBucket(key, f"expected an integer, got {raw!r}")
    return int(raw)


@dataclass(frozen=True)
class BucketState:
    """Bucket values as read from the store.

    Attributes:
        quota: Ceiling for the window, fixed at creation
        remaining: Requests left in the window
        reset_at: Epoch seconds at which the window's keys expire
    """
    quota: int
    remaining: int
    reset_at: int

    @classmethod
    def parse(
        cls,
        keys: BucketKeys,
        raw_quota: str | bytes | None,
        raw_remaining: str | bytes | None,
        raw_reset: str | bytes | None,
    ) -> Optional["BucketState"]:
        """Build a state from a bulk read.

        Returns None on a full cache miss (no active bucket).

        Raises:
            CorruptedBucket: only some keys exist, a value is not an
                integer, or remaining lies outside [0, quota].
        """
        raw = (raw_quota, raw_remaining, raw_reset)
        if all(v is None for v in raw):
            return None
        for key, value in zip(keys.as_list(), raw):
            if value is None:
                raise CorruptedBucket(key, "key missing while the rest of the bucket exists")

        quota = parse_int(keys.quota, raw_quota)
        remaining = parse_int(keys.remaining, raw_remaining)
        reset_at = parse_int(keys.reset, raw_reset)

        if quota < 1:
            raise CorruptedBucket(keys.quota, f"quota must be positive, got {quota}")
        if not 0 <= remaining <= quota:
            raise CorruptedBucket(
                keys.remaining, f"remaining {remaining} outside [0, {quota}]"
            )
        return cls(quota=quota, remaining=remaining, reset_at=reset_at)


@dataclass(frozen=True)
class DecrementOutcome:
    """Result of a decrement-if-positive against the remaining counter.

    applied is False when remaining was already 0 and nothing was written.
    """
    applied: bool
    remaining: int


@dataclass(frozen=True)
class LimitResult:
    """Quota report returned for every check_and_consume call.

    Attributes:
        quota: Ceiling for the window
        used: quota - remaining
        remaining: Requests left after this call
        retry_after: When the window ends and quota resets (UTC)
        reset_at: retry_after as epoch seconds
        allowed: False only when the call found the window exhausted
    """
    quota: int
    used: int
    remaining: int
    retry_after: datetime
    reset_at: int
    allowed: bool = True

    @classmethod
    def from_values(
        cls, quota: int, remaining: int, reset_at: int, allowed: bool = True
    ) -> "LimitResult":
        return cls(
            quota=quota,
            used=quota - remaining,
            remaining=remaining,
            retry_after=datetime.fromtimestamp(reset_at, tz=timezone.utc),
            reset_at=reset_at,
            allowed=allowed,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "quota": self.quota,
            "used": self.used,
            "remaining": self.remaining,
            "retry_after": self.retry_after.isoformat(),
            "reset_at": self.reset_at,
            "allowed": self.allowed,
        }

    def headers(self) -> dict[str, str]:
        """Standard X-RateLimit-* response headers."""
        return {
            "X-RateLimit-Limit": str(self.quota),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
