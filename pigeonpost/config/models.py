"""Configuration models for PigeonPost."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_DELIVERY_TIMEOUT_SECONDS = 30.0


class DatabaseConfig(BaseModel):
    """Relational store connection settings."""

    url: str = Field(default="", description="PostgreSQL URL; empty means PIGEONPOST_DATABASE_URL.")
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=5, ge=0)
    echo: bool = Field(default=False)


class WebhooksConfig(BaseModel):
    """Webhook delivery and routing configuration."""

    delivery_timeout_seconds: float = Field(default=MAX_DELIVERY_TIMEOUT_SECONDS, gt=0.0, le=MAX_DELIVERY_TIMEOUT_SECONDS)
    max_concurrent_deliveries: int = Field(default=10, ge=1, le=256)
    dispatch_queue_size: int = Field(default=1000, ge=1)
    dispatch_workers: int = Field(default=4, ge=1, le=64)
    default_account_id: str = Field(default="default", min_length=1)
    incoming_base_path: str = Field(default="/webhooks/incoming")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class PigeonPostConfig(BaseSettings):
    """Root configuration model for PigeonPost."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    webhooks: WebhooksConfig = Field(default_factory=WebhooksConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="PIGEONPOST_",
        env_nested_delimiter="__",
        extra="ignore",
    )
