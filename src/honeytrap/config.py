"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
An optional config.yaml provides defaults that environment variables override.
"""

import os
from functools import lru_cache
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/honeytrap
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class DatabaseSettings(BaseSettings):
    """Persistence store configuration."""

    url: str = Field(default="sqlite:///./honeytrap.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")
    seed_defaults: bool = Field(default=True, description="Provision the admin PIN on startup when missing")
    default_admin_pin: str = Field(default="3591", description="PIN provisioned when none is stored")

    @field_validator("url", mode="before")
    def normalize_url(cls, v: Optional[str]) -> str:
        """Route bare postgres URLs through the psycopg dialect."""
        if not v:
            return "sqlite:///./honeytrap.db"
        v = v.strip()
        if v.startswith("postgres://"):
            return "postgresql+psycopg://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            return "postgresql+psycopg://" + v[len("postgresql://"):]
        return v

    class Config:
        env_prefix = "HONEYTRAP_DATABASE_"


class SecuritySettings(BaseSettings):
    """Session and rate limit configuration."""

    session_secret: str = Field(
        default="change-this-in-production-use-env-var",
        description="Secret used to sign session cookies",
    )
    session_cookie: str = Field(default="sessionId", description="Session cookie name")
    session_max_age_seconds: int = Field(default=900, description="Session inactivity timeout")

    login_rate_window_seconds: float = Field(default=60, description="Login surface window")
    login_rate_max: int = Field(default=5, description="Login attempts per window per IP")
    admin_rate_window_seconds: float = Field(default=3600, description="Admin surface window")
    admin_rate_max: int = Field(default=3, description="PIN attempts per window per IP")

    class Config:
        env_prefix = "HONEYTRAP_SECURITY_"


class TrapSettings(BaseSettings):
    """Credential trap configuration."""

    max_field_length: int = Field(default=255, description="Cap for captured username/password")
    delay_min_ms: int = Field(default=500, description="Lower bound of the artificial delay")
    delay_max_ms: int = Field(default=1500, description="Upper bound of the artificial delay")

    @field_validator("delay_max_ms")
    def validate_delay_range(cls, v: int, info: Any) -> int:
        """The delay window cannot be inverted."""
        low = info.data.get("delay_min_ms", 0)
        if v < low:
            raise ValueError("delay_max_ms must be >= delay_min_ms")
        return v

    class Config:
        env_prefix = "HONEYTRAP_TRAP_"


class IngestionSettings(BaseSettings):
    """Ingestion pipeline configuration."""

    queue_max_size: int = Field(default=10000, description="Pending records before new ones are dropped")
    workers: int = Field(default=2, description="Concurrent writer tasks")
    shutdown_timeout_seconds: float = Field(default=5.0, description="Drain budget on shutdown")

    class Config:
        env_prefix = "HONEYTRAP_INGESTION_"


class AdminSettings(BaseSettings):
    """Analytics console configuration."""

    path: str = Field(default="/admin2430.html", description="Mount point of the admin console")
    default_days: int = Field(default=7, description="Timeline window when none is requested")
    top_ips_limit: int = Field(default=10, description="Entries in the top IP chart")
    top_usernames_limit: int = Field(default=20, description="Entries in the top username chart")
    distribution_limit: int = Field(default=10, description="Entries in the request path chart")
    recent_default_limit: int = Field(default=25, description="Default page size for recent attempts")
    recent_max_limit: int = Field(default=100, description="Largest page size for recent attempts")

    class Config:
        env_prefix = "HONEYTRAP_ADMIN_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    environment: str = Field(default="development", description="development or production")
    trust_proxy: bool = Field(default=False, description="Take the client IP from X-Forwarded-For")
    trusted_proxy_hops: int = Field(
        default=1,
        ge=1,
        description="Reverse proxies in front of the service; the entry they appended is used",
    )
    metrics_enabled: bool = Field(default=True, description="Expose /metrics")

    # Component settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    trap: TrapSettings = Field(default_factory=TrapSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    class Config:
        env_prefix = "HONEYTRAP_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


_CONFIG_ENV_MAPPINGS = {
    ("server", "host"): "HONEYTRAP_HOST",
    ("server", "port"): "HONEYTRAP_PORT",
    ("server", "debug"): "HONEYTRAP_DEBUG",
    ("server", "log_level"): "HONEYTRAP_LOG_LEVEL",
    ("server", "environment"): "HONEYTRAP_ENVIRONMENT",
    ("server", "trust_proxy"): "HONEYTRAP_TRUST_PROXY",
    ("server", "trusted_proxy_hops"): "HONEYTRAP_TRUSTED_PROXY_HOPS",
    ("server", "metrics_enabled"): "HONEYTRAP_METRICS_ENABLED",
    ("database", "url"): "HONEYTRAP_DATABASE_URL",
    ("database", "seed_defaults"): "HONEYTRAP_DATABASE_SEED_DEFAULTS",
    ("database", "default_admin_pin"): "HONEYTRAP_DATABASE_DEFAULT_ADMIN_PIN",
    ("security", "session_secret"): "HONEYTRAP_SECURITY_SESSION_SECRET",
    ("security", "session_max_age_seconds"): "HONEYTRAP_SECURITY_SESSION_MAX_AGE_SECONDS",
    ("security", "login_rate_window_seconds"): "HONEYTRAP_SECURITY_LOGIN_RATE_WINDOW_SECONDS",
    ("security", "login_rate_max"): "HONEYTRAP_SECURITY_LOGIN_RATE_MAX",
    ("security", "admin_rate_window_seconds"): "HONEYTRAP_SECURITY_ADMIN_RATE_WINDOW_SECONDS",
    ("security", "admin_rate_max"): "HONEYTRAP_SECURITY_ADMIN_RATE_MAX",
    ("trap", "max_field_length"): "HONEYTRAP_TRAP_MAX_FIELD_LENGTH",
    ("trap", "delay_min_ms"): "HONEYTRAP_TRAP_DELAY_MIN_MS",
    ("trap", "delay_max_ms"): "HONEYTRAP_TRAP_DELAY_MAX_MS",
    ("ingestion", "queue_max_size"): "HONEYTRAP_INGESTION_QUEUE_MAX_SIZE",
    ("ingestion", "workers"): "HONEYTRAP_INGESTION_WORKERS",
    ("admin", "path"): "HONEYTRAP_ADMIN_PATH",
}


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    for (section, key), env_var in _CONFIG_ENV_MAPPINGS.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
