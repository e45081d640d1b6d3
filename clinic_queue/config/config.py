"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development but require
    explicit configuration in production environments.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = Field(default="Clinic Queue", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Patient record store
    store_backend: Literal["memory", "arango"] = Field(
        default="memory",
        description="Patient record store backend"
    )
    arango_host: str = Field(
        default="http://localhost:8529",
        description="ArangoDB host URL"
    )
    # Accepts ARANGODB_USERNAME / ARANGODB_PASSWORD as well
    arango_username: str = Field(
        default="root",
        validation_alias=AliasChoices("arango_username", "arangodb_username"),
        description="ArangoDB username"
    )
    arango_password: str = Field(
        default="",
        validation_alias=AliasChoices("arango_password", "arangodb_password"),
        description="ArangoDB password"
    )
    arango_database: str = Field(default="clinic_queue", description="ArangoDB database name")
    arango_collection: str = Field(default="patients", description="Patient collection name")

    # Admin access
    admin_token: str = Field(
        default="",
        description="Shared admin token expected in X-Admin-Token; empty disables the check"
    )

    # Queue number assignment
    queue_number_max_retries: int = Field(
        default=5, ge=1, description="Attempts before a registration fails as transient"
    )
    queue_number_retry_delay_seconds: float = Field(
        default=0.05, ge=0, description="Base backoff between assignment attempts"
    )
    queue_scope: Literal["today", "all"] = Field(
        default="today",
        description="Rank only today's registrations, or every unserved record"
    )

    # Real-time notifications
    max_subscribers: int = Field(default=500, ge=1, description="Maximum live queue subscribers")
    subscriber_buffer_size: int = Field(
        default=8, ge=1, description="Pending signals held per subscriber before coalescing"
    )
    sse_heartbeat_seconds: float = Field(
        default=15.0, gt=0, description="Interval between SSE keep-alive comments"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def admin_auth_enabled(self) -> bool:
        """Admin commands require a token only when one is configured."""
        return bool(self.admin_token)

    def get_safe_config_dict(self) -> dict:
        """Return configuration dict with secrets redacted for logging."""
        config = self.model_dump()
        # Redact sensitive values
        if config.get("arango_password"):
            config["arango_password"] = "***REDACTED***"
        if config.get("admin_token"):
            config["admin_token"] = "***REDACTED***"
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    Use dependency injection in FastAPI routes for testability.
    """
    return Settings()
