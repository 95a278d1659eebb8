"""Application configuration using pydantic-settings."""
from typing import List, Optional

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    # Redis Configuration
    redis_url: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for the stats cache and preferences",
    )

    arq_redis_url: RedisDsn = Field(
        default="redis://localhost:6379/1",
        description="Redis connection string for ARQ background workers",
    )

    # Stripe Configuration
    stripe_secret_key: Optional[str] = Field(
        default=None,
        description="Stripe secret key for API authentication (analytics are disabled without it)",
    )
    stripe_page_delay_ms: int = Field(
        default=50,
        ge=0,
        description="Delay between paginated Stripe list calls, in milliseconds",
    )

    # Cache Configuration
    stats_cache_ttl_seconds: int = Field(default=3600, ge=1, description="Lifetime of the cached metrics snapshot")
    subscriber_cache_ttl_seconds: int = Field(default=3600, ge=1, description="Lifetime of the cached subscriber table")

    # Report Configuration
    report_recipients: str = Field(
        default="",
        description="Default comma-separated list of weekly report recipients",
    )
    site_name: str = Field(default="Subscription Analytics", description="Site name used in report subjects")
    dashboard_url: str = Field(
        default="http://localhost:8000/dashboard",
        description="Link back to the analytics dashboard included in reports",
    )

    # SMTP Configuration
    smtp_host: str = Field(default="localhost", description="SMTP relay host")
    smtp_port: int = Field(default=587, description="SMTP relay port")
    smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Upgrade the SMTP connection with STARTTLS")
    mail_from: str = Field(default="analytics@localhost", description="Sender address for reports")

    # Application Configuration
    app_env: str = Field(default="development", description="Application environment (development/staging/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=True, description="Enable debug mode")

    # JWT Configuration
    jwt_secret_key: str = Field(
        default="change-this-jwt-secret-in-production",
        description="Signing key for bearer tokens and action nonces",
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    nonce_ttl_minutes: int = Field(default=720, description="Lifetime of dashboard action nonces in minutes")

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins",
    )

    @property
    def stripe_page_delay(self) -> float:
        """Inter-page delay in seconds."""
        return self.stripe_page_delay_ms / 1000


# Global settings instance
settings = Settings()
