"""Configuration using pydantic-settings."""

import os
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings

DEFAULT_JWT_SECRET = "change-me-in-production"  # noqa: S105


class Settings(BaseSettings):
    """Application settings with validation and constants."""

    host: str = "0.0.0.0"  # nosec B104 - Required for container deployment
    port: int = 8000
    log_level: str = "INFO"
    log_file: str | None = None

    environment: Literal["development", "docker", "lambda"] = "development"

    # Storage
    database_url: str = "sqlite+aiosqlite:///./data/droplets.db"
    redis_url: str | None = None
    blob_url: str = "file://./data/images"
    aws_region: str = "us-east-1"

    # Sessions and JWT
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "droplets-of-creation"
    jwt_audience: str = "droplets-api"
    session_ttl_days: int = 7
    cookie_name: str = "session"
    cookie_secure: bool = True
    bcrypt_rounds: int = 12
    allow_unsigned_signup: bool = True

    cors_origins: list[str] = [
        "http://localhost:3000",
        "https://droplets-of-creation.pages.dev",
        "https://dropletsofcreation.com",
    ]
    rate_limit: str = "30/minute"

    # Image generation
    stability_api_key: str | None = None
    stability_base_url: str = "https://api.stability.ai"
    image_timeout: int = 60
    image_max_attempts: int = 3
    image_retry_base_delay: float = 1.0
    remove_background: bool = True

    # World state
    world_cache_ttl: int = 60
    world_update_attempts: int = 3
    world_update_base_delay: float = 0.1

    # Leaderboards
    leaderboard_cache_ttl: int = 300
    user_stats_cache_ttl: int = 120

    # Admin and realtime
    admin_token: str | None = None
    world_room_url: str | None = None
    phase_rotation_seconds: int = 0

    reconcile_after_seconds: int = 300
    public_base_url: str | None = None

    @property
    def is_lambda_environment(self) -> bool:
        """Check if running in AWS Lambda."""
        return self.environment == "lambda" or bool(os.getenv("AWS_LAMBDA_FUNCTION_NAME"))

    @property
    def session_ttl_seconds(self) -> int:
        """Lifetime of a login session in seconds."""
        return self.session_ttl_days * 24 * 60 * 60

    @model_validator(mode="after")
    def validate_environment(self) -> "Settings":
        """Set environment based on DROPLETS_ENV or AWS Lambda detection."""
        env = os.getenv("DROPLETS_ENV", "").lower()
        if env in ("lambda", "docker", "development"):
            self.environment = env  # type: ignore[assignment]
        elif os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
            self.environment = "lambda"
        return self

    @model_validator(mode="after")
    def validate_jwt_secret(self) -> "Settings":
        """Refuse to sign sessions with the placeholder secret in Lambda."""
        if self.is_lambda_environment and self.jwt_secret == DEFAULT_JWT_SECRET:
            raise ValueError(
                "DROPLETS_JWT_SECRET must be set when running in AWS Lambda. "
                "The built-in development secret is not accepted there."
            )
        return self

    class Config:
        """Pydantic config."""

        env_prefix = "DROPLETS_"
        env_file = ".env"
        extra = "ignore"


settings = Settings()
