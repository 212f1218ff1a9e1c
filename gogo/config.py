"""
Configuration and settings for the delivery backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service and worker."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible object storage
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Event queue (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="gogo:events")

    # Market
    timezone: str = Field(default="Asia/Manila")
    currency: str = Field(default="PHP")

    # Approvals. Production requires an admin to review applications.
    auto_approve_drivers: bool = Field(default=False)
    auto_approve_merchants: bool = Field(default=False)

    # Money
    min_top_up_amount: float = Field(default=100)
    service_fee_rate: float = Field(default=0.05)
    default_delivery_fee: float = Field(default=49)

    # Dispatch and housekeeping
    driver_notify_limit: int = Field(default=10)
    dispatch_radius_km: float = Field(default=10.0)
    ride_request_timeout_seconds: int = Field(default=600)
    scheduled_ride_lead_seconds: int = Field(default=900)
    notification_retention_days: int = Field(default=30)
    maintenance_interval_seconds: int = Field(default=60)

    # Long-poll watches each hold a worker thread while waiting.
    watch_max_timeout_seconds: float = Field(default=25.0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
