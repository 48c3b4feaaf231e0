"""Application configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="helpdesk-backend", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")
    secret_key: str = Field(
        default="dev-secret-key-change-in-production",
        description="Secret key for signing",
    )

    # API
    api_v1_prefix: str = Field(default="/api/v1", description="API v1 prefix")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="CORS allowed origins",
    )

    # Database
    db_host: str = Field(default="localhost", description="PostgreSQL host")
    db_port: int = Field(default=5432, description="PostgreSQL port")
    db_user: str = Field(default="postgres", description="PostgreSQL user")
    db_password: str = Field(default="postgres", description="PostgreSQL password")
    db_name: str = Field(default="helpdesk", description="PostgreSQL database name")

    # Redis
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, description="Redis port")
    redis_db: int = Field(default=0, description="Redis database number")
    redis_password: str | None = Field(default=None, description="Redis password")

    # JWT Authentication
    access_token_expire_minutes: int = Field(
        default=30, description="Access token expiration in minutes"
    )

    # Ticket store
    ticket_store_backend: Literal["memory", "database"] = Field(
        default="memory", description="Ticket persistence backend"
    )
    subcategory_policy_file: str | None = Field(
        default=None,
        description="JSON file overriding the built-in sub-category policy catalog",
    )
    specialist_directory_file: str | None = Field(
        default=None,
        description="JSON file listing specialists used for assignee suggestions",
    )

    # SLA
    sla_approval_hours: dict[str, float] = Field(
        default={"Critical": 24, "High": 36, "Medium": 48, "Low": 72},
        description="Approval window per urgency, in hours",
    )
    sla_processing_hours: dict[str, float] = Field(
        default={"Critical": 8, "High": 24, "Medium": 48, "Low": 72},
        description="Processing window per urgency once routed, in hours",
    )
    sla_at_risk_hours: float = Field(
        default=4.0, ge=0, description="Remaining hours below which SLA is At Risk"
    )
    auto_close_hours: float = Field(
        default=72.0,
        gt=0,
        description="Hours awaiting confirmation before a ticket auto-closes",
    )
    sla_sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Interval of the periodic overdue sweep"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log output format"
    )

    # Notifications
    notification_webhook_url: str | None = Field(
        default=None, description="Generic webhook receiving ticket transitions"
    )
    slack_webhook_url: str | None = Field(
        default=None, description="Slack incoming webhook URL"
    )
    slack_channel: str | None = Field(
        default=None, description="Slack channel override (optional)"
    )

    @computed_field
    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Construct synchronous database URL for migrations."""
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def redis_url(self) -> str:
        """Construct Redis URL from components."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
