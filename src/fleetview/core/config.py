"""
Configuration management for the FleetView device gateway.

Uses Pydantic Settings for environment variable validation and type safety.
"""

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendConfig(BaseSettings):
    """Backend data API connection configuration."""

    base_url: Optional[str] = Field(
        default=None,
        description="Backend data API base URL (API_BASE_URL)"
    )
    internal_secret: Optional[str] = Field(
        default=None,
        description="Shared secret for service-to-service auth (takes precedence)"
    )
    client_principal_id: Optional[str] = Field(
        default=None,
        description="Platform identity principal ID, used when no secret is set"
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Per-call timeout in seconds"
    )

    model_config = SettingsConfigDict(env_prefix="API_")

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Normalize the base URL; blank means not configured."""
        if v is None or not v.strip():
            return None
        return v.strip().rstrip("/")


class StatusConfig(BaseSettings):
    """Device status thresholds."""

    active_threshold_hours: float = Field(
        default=24.0,
        gt=0,
        description="Devices seen within this many hours are active"
    )
    stale_threshold_hours: float = Field(
        default=168.0,
        gt=0,
        description="Devices seen within this many hours are stale, beyond it missing"
    )

    model_config = SettingsConfigDict(env_prefix="STATUS_")

    @model_validator(mode="after")
    def validate_order(self) -> "StatusConfig":
        """The active window must be shorter than the stale window."""
        if self.active_threshold_hours >= self.stale_threshold_hours:
            raise ValueError("active_threshold_hours must be less than stale_threshold_hours")
        return self


class NameCacheConfig(BaseSettings):
    """Device name cache configuration."""

    ttl_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Entry freshness window in seconds (0 disables expiry)"
    )

    model_config = SettingsConfigDict(env_prefix="NAME_CACHE_")


class AggregatorConfig(BaseSettings):
    """Module aggregation configuration."""

    fallback_enabled: bool = Field(
        default=True,
        description="Derive module data from the event stream when a module endpoint is down"
    )
    fallback_event_limit: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="How many recent events to scan for fallback extraction"
    )

    model_config = SettingsConfigDict(env_prefix="AGGREGATOR_")


class ServerConfig(BaseSettings):
    """HTTP server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Bind port")
    reload: bool = Field(default=False, description="Enable uvicorn auto-reload")

    model_config = SettingsConfigDict(env_prefix="SERVER_")


class AppConfig(BaseSettings):
    """Main application configuration."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # Nested configurations
    backend: BackendConfig = Field(default_factory=BackendConfig)
    status: StatusConfig = Field(default_factory=StatusConfig)
    name_cache: NameCacheConfig = Field(default_factory=NameCacheConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Lazily loads configuration on first access.

    Returns:
        AppConfig: The global configuration instance
    """
    global _config
    if _config is None:
        _config = AppConfig(
            backend=BackendConfig(),
            status=StatusConfig(),
            name_cache=NameCacheConfig(),
            aggregator=AggregatorConfig(),
            server=ServerConfig(),
        )
    return _config


def reload_config() -> AppConfig:
    """
    Reload configuration from environment variables.

    Useful for testing or when environment changes.

    Returns:
        AppConfig: The reloaded configuration instance
    """
    global _config
    _config = None
    return get_config()
