"""Rate limiting middleware.

Applies the shared fixed-window limiter to every request. Requests are
keyed per API key if present, otherwise per client IP.
"""

import hashlib
import time
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from quotaguard.core.config import settings
from quotaguard.core.logging import get_log_context, get_logger
from quotaguard.exceptions import RateLimitError, RateLimitExceeded, StoreUnavailable
from quotaguard.services.limiter import LimitResult, RedisLimiter

logger = get_logger(__name__)

MAX_API_KEY_LENGTH = 512


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce the shared rate limit on requests.

    The limiter is taken from the constructor or, if omitted, from
    app.state.limiter (set by the application lifespan).

    When the store is unavailable the request is let through (fail-open)
    unless fail_closed is set, in which case it is answered with 503.
    """

    def __init__(
        self,
        app,
        limiter: Optional[RedisLimiter] = None,
        fail_closed: Optional[bool] = None,
    ):
        super().__init__(app)
        self._limiter = limiter
        self.fail_closed = (
            fail_closed if fail_closed is not None else settings.rate_limit_fail_closed
        )

    def _get_client_key(self, request: Request) -> Optional[str]:
        """Get the rate limit identifier for the request.

        API keys and IPs are hashed with SHA-256 so raw credentials and
        addresses never reach the store.

        Returns:
            Identifier string, or None if the API key is too long.
        """
        auth = request.headers.get("Authorization", "")
        if auth.startswith("Bearer "):
            api_key = auth[7:].strip()
            if len(api_key) > MAX_API_KEY_LENGTH:
                return None
            key_hash = hashlib.sha256(api_key.encode()).hexdigest()[:32]
            return f"apikey:{key_hash}"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"

        ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:32]
        return f"ip:{ip_hash}"

    def _get_limiter(self, request: Request) -> Optional[RedisLimiter]:
        if self._limiter is not None:
            return self._limiter
        return getattr(request.app.state, "limiter", None)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        identifier = self._get_client_key(request)
        if identifier is None:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "invalid_api_key",
                    "message": f"API key too long (max {MAX_API_KEY_LENGTH} characters)",
                },
            )

        limiter = self._get_limiter(request)
        if limiter is None:
            return await self._handle_store_failure(
                request, call_next, StoreUnavailable("check_and_consume", detail="no limiter configured")
            )

        try:
            result = await limiter.check_and_consume(identifier)
        except StoreUnavailable as e:
            return await self._handle_store_failure(request, call_next, e)
        except RateLimitError as e:
            logger.error(
                f"Rate limiter error on {request.url.path}: {e.message}",
                extra=get_log_context(identifier=identifier, path=request.url.path),
            )
            content = {"error": type(e).__name__, "message": "Rate limiting failed."}
            # Store details such as key names are only exposed in debug mode
            if settings.debug:
                content["message"] = e.message
            return JSONResponse(status_code=e.status_code, content=content)

        if not result.allowed:
            return self._rejection(result)

        response = await call_next(request)
        response.headers.update(result.headers())
        return response

    def _rejection(self, result: LimitResult) -> JSONResponse:
        exc = RateLimitExceeded(result)
        retry_after = max(0, result.reset_at - int(time.time()))
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "retry_after": retry_after,
            },
            headers={**result.headers(), "Retry-After": str(retry_after)},
        )

    async def _handle_store_failure(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        error: StoreUnavailable,
    ) -> Response:
        """Apply the fail-open/fail-closed policy for store failures."""
        context = get_log_context(
            operation=error.operation,
            key=error.key,
            path=request.url.path,
            method=request.method,
        )
        if self.fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered: {error}. Request denied.",
                extra=context,
            )
            return JSONResponse(
                status_code=error.status_code,
                content={
                    "error": "rate_limiter_unavailable",
                    "message": "Rate limiting is temporarily unavailable.",
                },
            )

        logger.warning(
            f"Rate limiting fail-open triggered: {error}. "
            "Request allowed without rate limit check.",
            extra=context,
        )
        return await call_next(request)
