"""
Settings (environment) and PoolConfig (per-pool, immutable).

Settings are read once at import from TXPOOL_* environment variables or a
.env file. PoolConfig is what a Pool actually consumes; build it with
PoolConfig.from_settings() or directly.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TXPOOL_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    POOL_MAX_SIZE: int = 10
    POOL_MIN_IDLE: int = 0
    POOL_ACQUIRE_TIMEOUT: float = 30.0
    POOL_IDLE_TTL_SEC: float | None = 300.0
    POOL_MAX_LIFETIME_SEC: float | None = 600.0
    POOL_DRAIN_TIMEOUT: float = 30.0
    # only ping connections idle longer than this (seconds)
    POOL_PING_IDLE_THRESHOLD: float | None = 30.0

    CONNECT_TIMEOUT: int = 10
    CONNECT_RETRIES: int = 2
    CONNECT_RETRY_BACKOFF: float = 0.2
    # seconds; None or 0 = no limit
    STATEMENT_TIMEOUT: int | None = None

    QUERY_RETRY_LIMIT: int = 3
    QUERY_RETRY_BACKOFF: float = 0.1

    LOG_LEVEL: str = "INFO"


settings = Settings()  # type: ignore


class PoolConfig(BaseModel):
    """Recognized pool options. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    max_size: int = Field(default=10, ge=1)
    min_idle: int = Field(default=0, ge=0)
    acquire_timeout: float = Field(default=30.0, ge=0)
    idle_ttl: float | None = Field(default=300.0, gt=0)
    max_lifetime: float | None = Field(default=600.0, gt=0)
    drain_timeout: float = Field(default=30.0, ge=0)
    ping_idle_threshold: float | None = Field(default=30.0, ge=0)
    connect_retries: int = Field(default=2, ge=0)
    connect_backoff: float = Field(default=0.2, ge=0)
    retry_limit: int = Field(default=3, ge=0)
    retry_backoff: float = Field(default=0.1, ge=0)

    @model_validator(mode="after")
    def _check_min_idle(self) -> "PoolConfig":
        if self.min_idle > self.max_size:
            raise ValueError(
                f"min_idle ({self.min_idle}) must not exceed max_size ({self.max_size})"
            )
        return self

    @classmethod
    def from_settings(
        cls, source: Settings | None = None, **overrides: Any
    ) -> "PoolConfig":
        """Build from environment-backed Settings; keyword overrides win."""
        s = source or settings
        values: dict[str, Any] = {
            "max_size": s.POOL_MAX_SIZE,
            "min_idle": s.POOL_MIN_IDLE,
            "acquire_timeout": s.POOL_ACQUIRE_TIMEOUT,
            "idle_ttl": s.POOL_IDLE_TTL_SEC or None,
            "max_lifetime": s.POOL_MAX_LIFETIME_SEC or None,
            "drain_timeout": s.POOL_DRAIN_TIMEOUT,
            "ping_idle_threshold": s.POOL_PING_IDLE_THRESHOLD,
            "connect_retries": s.CONNECT_RETRIES,
            "connect_backoff": s.CONNECT_RETRY_BACKOFF,
            "retry_limit": s.QUERY_RETRY_LIMIT,
            "retry_backoff": s.QUERY_RETRY_BACKOFF,
        }
        values.update(overrides)
        return cls(**values)
