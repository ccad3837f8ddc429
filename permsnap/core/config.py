"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Snapshot tuning values (SLA, batch size, concurrency,
TTL) are validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from permsnap.core.constants import (
    DEFAULT_SNAPSHOT_BATCH_SIZE,
    DEFAULT_SNAPSHOT_MAX_CONCURRENCY,
    DEFAULT_SNAPSHOT_SLA_SECONDS,
    DEFAULT_SNAPSHOT_TTL_SECONDS,
)


class Settings(BaseSettings):
    """Engine settings loaded from environment and .env.

    DATABASE_URL is only required when a run actually needs the store
    (see permsnap.infrastructure.persistence.database); unit tests build
    Settings without it.
    """

    # App
    app_name: str = "permsnap"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database (PostgreSQL via SQLAlchemy asyncio + asyncpg)
    database_url: str = ""
    database_echo: bool = False
    # Optional pool/driver overrides (None = use defaults in database.py)
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None

    # Redis (snapshot cache and progress pub/sub)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None
    redis_socket_timeout: float = 5.0

    # Snapshot computation
    snapshot_sla_seconds: float = DEFAULT_SNAPSHOT_SLA_SECONDS
    snapshot_write_batch_size: int = DEFAULT_SNAPSHOT_BATCH_SIZE
    snapshot_max_concurrency: int = DEFAULT_SNAPSHOT_MAX_CONCURRENCY
    # 0 disables expiry; stale entries then only go away through stale-key removal.
    snapshot_ttl_seconds: int = DEFAULT_SNAPSHOT_TTL_SECONDS

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_snapshot_tuning(self) -> "Settings":
        """Reject non-positive SLA, batch size and concurrency, and negative TTL."""
        if self.snapshot_sla_seconds <= 0:
            raise ValueError("SNAPSHOT_SLA_SECONDS must be greater than 0")
        if self.snapshot_write_batch_size < 1:
            raise ValueError("SNAPSHOT_WRITE_BATCH_SIZE must be at least 1")
        if self.snapshot_max_concurrency < 1:
            raise ValueError("SNAPSHOT_MAX_CONCURRENCY must be at least 1")
        if self.snapshot_ttl_seconds < 0:
            raise ValueError("SNAPSHOT_TTL_SECONDS must be 0 (no expiry) or positive")
        if not 0.0 <= self.telemetry_sample_rate <= 1.0:
            raise ValueError(
                f"TELEMETRY_SAMPLE_RATE must be between 0.0 and 1.0, got: {self.telemetry_sample_rate}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
