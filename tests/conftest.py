"""Shared fixtures for limiter tests."""

import pytest
import pytest_asyncio

from quotaguard.services.limiter import (
    InMemoryBucketStore,
    RedisLimiter,
    reset_limiter,
)


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset the global limiter before and after each test."""
    reset_limiter()
    yield
    reset_limiter()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store(clock):
    return InMemoryBucketStore(clock=clock)


@pytest_asyncio.fixture
async def limiter(memory_store, clock):
    """A READY limiter with a small quota over an in-memory store."""
    limiter = RedisLimiter(memory_store, quota=5, window_seconds=60, clock=clock)
    await limiter.init()
    yield limiter
    await limiter.close()
