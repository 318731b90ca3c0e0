"""Middleware package for the limiter."""

from quotaguard.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "RateLimitMiddleware",
]
