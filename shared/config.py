"""
Shared configuration management for Case Cache Sync.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CASECACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Key space and transport
    cache_namespace: str = Field(default="casecache")
    invalidation_channel: str = Field(default="casecache:cache:update")

    # Cache expiry
    default_ttl_seconds: int = Field(default=86400)
    entity_ttl_seconds: int = Field(default=3600)

    # Rate limiting
    rate_limit_per_minute: int = Field(default=60)
    rate_limit_per_hour: int = Field(default=1000)

    # Failure monitor
    health_check_interval_seconds: float = Field(default=30.0)
    recovery_check_interval_seconds: float = Field(default=60.0)
    health_probe_ttl_seconds: int = Field(default=10)
    recovery_max_attempts: int = Field(default=3)
    recovery_retry_delay_seconds: float = Field(default=5.0)
    shutdown_timeout_seconds: float = Field(default=10.0)

    # Invalidation consumer
    message_max_length: int = Field(default=10000)
    message_max_age_seconds: int = Field(default=300)

    # Portal startup
    clear_on_startup: bool = Field(default=False)
    clear_types: str = Field(default="all")

    # Metrics
    metrics_port: Optional[int] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str

    def __init__(self, service_name: str, **kwargs):
        super().__init__(service_name=service_name, **kwargs)


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
