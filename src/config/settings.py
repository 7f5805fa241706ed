"""Application settings using Pydantic Settings.

Centralized configuration for the notification delivery subsystem.

Every component receives its settings object explicitly through its
constructor; ``get_settings()`` is only the process-wide default used by
the Celery task and the web layer when nothing is injected.
"""

import logging
from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


class DeliverySettings(BaseSettings):
    """Idempotency, deduplication and retention policy for outbound email."""

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_DEDUP_",
        extra="ignore",
    )

    # Idempotency records
    ttl_hours: int = Field(default=24, ge=1, description="Hours before an idempotency record expires")
    max_retry_attempts: int = Field(default=3, ge=1, description="Max transport attempts per key")
    stale_pending_minutes: int = Field(
        default=15,
        ge=1,
        description="Minutes after which an unfinished pending send is treated as abandoned",
    )

    # Key derivation
    key_length: int = Field(default=32, ge=8, le=64, description="Hex characters kept from digests")
    key_metadata_fields: Annotated[List[str], NoDecode] = Field(
        default=["case_id", "campaign_id", "user_id"],
        description="Metadata fields mixed into derived idempotency keys",
    )

    # Content deduplication
    duplicate_window_minutes: int = Field(
        default=5,
        ge=0,
        description="Trailing window in which identical content is suppressed",
    )

    # Retention
    log_retention_days: int = Field(default=30, ge=1, description="Days to keep deduplication logs")
    cleanup_batch_size: int = Field(default=500, ge=1, description="Expired keys deleted per batch")
    cleanup_hour: int = Field(default=2, ge=0, le=23, description="UTC hour of the daily sweep")
    cleanup_minute: int = Field(default=0, ge=0, le=59, description="Minute of the daily sweep")

    # Transport
    transport_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Socket timeout applied by the SMTP transport",
    )

    # Monitoring
    stats_window_hours: int = Field(default=24, ge=1, description="Default stats window")

    @field_validator("key_metadata_fields", mode="before")
    @classmethod
    def _split_fields(cls, value):
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class RedisSettings(BaseSettings):
    """Redis configuration for the Celery broker."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    db: int = Field(default=0, description="Redis database number")
    password: Optional[str] = Field(default=None, description="Redis password")
    ssl: bool = Field(default=False, description="Use SSL for Redis connection")

    @property
    def url(self) -> str:
        """Get Redis URL."""
        auth = f":{self.password}@" if self.password else ""
        protocol = "rediss" if self.ssl else "redis"
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"


class CelerySettings(BaseSettings):
    """Celery task queue configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CELERY_",
        extra="ignore",
    )

    broker_db: int = Field(default=1, description="Redis DB for Celery broker")
    result_db: int = Field(default=2, description="Redis DB for Celery results")

    task_serializer: str = Field(default="json", description="Task serialization format")
    result_serializer: str = Field(default="json", description="Result serialization format")
    accept_content: list = Field(default=["json"], description="Accepted content types")

    task_acks_late: bool = Field(default=True, description="Acknowledge tasks after completion")
    worker_prefetch_multiplier: int = Field(default=1, description="Tasks to prefetch per worker")
    task_time_limit: int = Field(default=600, description="Hard task time limit in seconds")
    task_soft_time_limit: int = Field(default=540, description="Soft task time limit")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="Notification Delivery", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    # Nested settings (loaded separately)
    @property
    def delivery(self) -> DeliverySettings:
        return DeliverySettings()

    @property
    def redis(self) -> RedisSettings:
        return RedisSettings()

    @property
    def celery(self) -> CelerySettings:
        return CelerySettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    return Settings()


@lru_cache
def get_delivery_settings() -> DeliverySettings:
    """Get cached delivery policy settings."""
    return DeliverySettings()
