from functools import lru_cache
from typing import ClassVar

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Required secrets (validated at startup)
    REQUIRED_SECRETS: ClassVar[list[str]] = [
        "jwt_secret",
    ]

    # Environment (development, staging, production)
    environment: str = "development"

    # App
    app_name: str = "FocusFlow API"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Redis (ephemeral state store)
    redis_url: str = "redis://localhost:6379"
    redis_namespace: str = "focusflow"
    redis_max_connections: int = 10
    redis_socket_timeout: float = 5.0

    # JWT issued by the identity provider
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # Rate limiting
    rate_limit_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @model_validator(mode="after")
    def validate_required_secrets(self) -> "Settings":
        """Validate that all required secrets are set (non-empty)."""
        missing = []
        for secret_name in self.REQUIRED_SECRETS:
            value = getattr(self, secret_name, "")
            if not value or not value.strip():
                missing.append(secret_name.upper())

        if missing:
            raise ValueError(
                f"Missing required secrets: {', '.join(missing)}. "
                "Set these environment variables before starting the application."
            )

        return self

    @model_validator(mode="after")
    def validate_cors_origins_in_production(self) -> "Settings":
        """Validate CORS origins are safe in production."""
        from urllib.parse import urlparse

        if self.environment != "production":
            return self

        unsafe_hostnames = {"localhost", "127.0.0.1", "0.0.0.0"}

        for origin in self.cors_origins:
            if origin == "*":
                raise ValueError(
                    "Wildcard (*) CORS origin is not allowed in production. "
                    "Specify exact origins instead."
                )

            hostname = urlparse(origin).hostname or ""
            if hostname in unsafe_hostnames:
                raise ValueError(
                    f"CORS origin '{origin}' uses hostname '{hostname}' which is not "
                    f"allowed in production. Use HTTPS production URLs instead."
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
