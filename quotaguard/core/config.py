from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Limiter settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Redis connection
    redis_url: str = "redis://localhost:6379/0"

    # Connection pool settings
    redis_max_connections: int = 40  # Upper bound on pooled connections
    redis_pool_timeout: float = 5.0  # Seconds to wait for a free connection
    redis_socket_timeout: float = 2.0  # Per-command read/write timeout
    redis_socket_connect_timeout: float = 2.0  # Time to establish connection
    redis_health_check_interval: int = 240  # PING idle connections before reuse

    # Rate limiting settings
    rate_limit_quota: int = 5000
    rate_limit_window_seconds: int = 3600
    rate_limit_key_prefix: str = "RateLimit"
    rate_limit_operation_timeout: float = 2.0  # Bound on each store round trip
    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when Redis is unavailable
    )

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("rate_limit_quota", "rate_limit_window_seconds", "redis_max_connections")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate quota, window and pool size are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator(
        "redis_pool_timeout",
        "redis_socket_timeout",
        "redis_socket_connect_timeout",
        "rate_limit_operation_timeout",
    )
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("rate_limit_key_prefix")
    @classmethod
    def validate_key_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("rate_limit_key_prefix must not be empty")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
