"""Custom exceptions for the rate limiter."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quotaguard.services.limiter.models import LimitResult


class RateLimitError(Exception):
    """Base class for limiter exceptions with HTTP status code.

    All custom exceptions inherit from this class and define their
    specific status_code so an HTTP layer can map them consistently.
    """
    status_code: int = 500

    def __init__(self, message: str = "Rate limiter error"):
        self.message = message
        super().__init__(message)


class StoreUnavailable(RateLimitError):
    """Raised when the shared store cannot be reached or fails a command.

    Covers timeouts, refused connections, pool exhaustion and protocol
    errors. Recoverable: callers may retry with backoff or fail open/closed.
    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(
        self,
        operation: str,
        key: str | None = None,
        detail: str | None = None,
    ):
        self.operation = operation
        self.key = key
        message = f"Store operation {operation!r} failed"
        if key:
            message += f" for key {key!r}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class CorruptedBucket(RateLimitError):
    """Raised when stored bucket values do not parse or break invariants.

    Indicates store-side tampering or a key schema mismatch. Not retryable.
    """
    status_code = 500

    def __init__(self, key: str, detail: str = "malformed bucket value"):
        self.key = key
        self.detail = detail
        super().__init__(f"Corrupted bucket at {key!r}: {detail}")


class LimiterClosed(RateLimitError):
    """Raised when the limiter is used after close()."""
    status_code = 500

    def __init__(self, detail: str = "Limiter has been closed"):
        super().__init__(detail)


class InitializationFailed(RateLimitError):
    """Raised when the liveness probe fails while bringing a limiter up.

    Fatal to that limiter instance; construct a new one to retry.
    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, detail: str = "Rate limiter initialization failed"):
        super().__init__(detail)


class RateLimitExceeded(RateLimitError):
    """Raised by HTTP collaborators when an identifier exhausted its window.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, result: LimitResult, detail: str | None = None):
        self.result = result
        message = detail or (
            f"Rate limit of {result.quota} requests exceeded. "
            f"Retry after {result.retry_after.isoformat()}."
        )
        super().__init__(message)
