"""Shared fixtures for tests that need a real Redis server.

Set REDIS_URL to point at a server; tests are skipped when none answers.
"""

import os
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from quotaguard.exceptions import InitializationFailed
from quotaguard.services.limiter import RedisLimiter, init_limiter

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/15")


@pytest_asyncio.fixture
async def make_limiter() -> AsyncGenerator:
    """Factory for limiters on a real Redis, each under a unique key prefix."""
    created: list[RedisLimiter] = []

    async def _make(quota: int = 5000, window_seconds: int = 3600) -> RedisLimiter:
        try:
            limiter = await init_limiter(
                REDIS_URL,
                quota=quota,
                window_seconds=window_seconds,
                key_prefix=f"test-{uuid.uuid4().hex}",
                socket_connect_timeout=0.5,
            )
        except InitializationFailed as e:
            pytest.skip(f"Redis not available at {REDIS_URL}: {e}")
        created.append(limiter)
        return limiter

    yield _make

    for limiter in created:
        client = limiter.store._get_redis()
        keys = [k async for k in client.scan_iter(match=f"{limiter.namespace.prefix}:*")]
        if keys:
            await client.delete(*keys)
        await limiter.close()
        await limiter.store.close()
