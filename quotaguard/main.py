from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from quotaguard.core.config import settings
from quotaguard.core.logging import get_logger, setup_logging
from quotaguard.exceptions import StoreUnavailable
from quotaguard.middleware.rate_limit import RateLimitMiddleware
from quotaguard.services.limiter import RedisLimiter, init_limiter


def create_app(limiter: Optional[RedisLimiter] = None) -> FastAPI:
    """Create a FastAPI application protected by the shared rate limiter.

    Args:
        limiter: Limiter to use; when omitted one is built from settings
            during startup.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Bring the limiter up on startup and release its pool on shutdown.

        Startup fails if the store does not answer the liveness probe.
        """
        if limiter is not None:
            app.state.limiter = await limiter.init()
        else:
            app.state.limiter = await init_limiter()

        logger.info(
            "Application startup complete",
            extra={
                "quota": app.state.limiter.quota,
                "window_seconds": app.state.limiter.window_seconds,
                "debug_mode": settings.debug,
            },
        )

        yield

        await app.state.limiter.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="quotaguard",
        description="Service protected by a distributed fixed-window rate limiter",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(RateLimitMiddleware)

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "Hello World!"

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check reporting whether the shared store answers PING."""
        try:
            await request.app.state.limiter.store.ping()
        except StoreUnavailable as e:
            return {
                "status": "degraded",
                "components": {"store": {"status": "error", "error": str(e)[:100]}},
            }
        return {"status": "ok", "components": {"store": {"status": "ok"}}}

    return app


# Create the application instance
app = create_app()
