"""Core utilities for the limiter."""

from quotaguard.core.config import settings
from quotaguard.core.logging import get_logger, setup_logging

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
]
