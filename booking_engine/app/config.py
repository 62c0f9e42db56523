from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    app_name: str = Field(default="Site Appointments Engine")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Tenant store
    store_backend: Literal["mongo", "memory"] = Field(default="mongo")
    mongo_uri: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="site_builder")
    tenant_store_collection: str = Field(default="tenant_kv")

    # Scheduling
    site_timezone: str = Field(
        default="UTC",
        validation_alias=AliasChoices("SITE_TIMEZONE", "CALENDAR_TIMEZONE"),
    )
    slot_step_policy: Literal["duration", "duration_plus_buffer"] = Field(default="duration")
    booking_write_retries: int = Field(default=8, ge=1)
    retention_months: int = Field(default=6, ge=1)

    # Sessions
    session_ttl_seconds: int = Field(default=86400, gt=0)

    # Email
    email_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("EMAIL_API_KEY", "RESEND_API_KEY"),
    )
    email_sender_email: str = Field(
        default="",
        validation_alias=AliasChoices("EMAIL_SENDER_EMAIL", "EMAIL_FROM"),
    )
    site_domain: str = Field(default="entrynets.com")
    notification_max_attempts: int = Field(default=3, ge=1)
    notification_backoff_seconds: float = Field(default=2.0, ge=0)
    notification_workers: int = Field(default=2, ge=1)

    allowed_origins: List[str] = Field(
        default_factory=list,
        validation_alias="ALLOWED_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
