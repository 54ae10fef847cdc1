"""
Shared configuration management for the Link Rules service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="LINK_RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Dashboard API (rule persistence and subscription status)
    api_base_url: str = Field(default="http://localhost:3000/api/v2")
    request_timeout_seconds: float = Field(default=10.0)

    # Retry behaviour for outbound calls
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=0.5)

    # Rule editing
    default_plan: str = Field(default="user")
    persistence_backend: str = Field(default="http")

    # Access token forwarded to the dashboard API, if any
    api_token: Optional[str] = Field(default=None)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
