"""
Application configuration with validation and environment management.

All configuration is read from the environment (or a local .env file) and
validated on startup to catch errors early.
"""

import os
from typing import List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation."""

    # Database
    database_url: str
    database_url_test: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:8080"
    cors_allow_credentials: bool = True
    cors_allowed_headers: str = "Content-Type,Authorization,X-Request-ID"

    # Monitoring (optional)
    sentry_dsn: Optional[str] = None
    environment: str = "development"

    # Authentication
    # In test mode the bearer token is taken as the caller's user id.
    auth_test_mode: bool = False

    # Rate limiting
    rate_limit_enabled: bool = True
    access_check_rate_limit: str = "120/minute"

    # Publication workflow
    confirmation_token_ttl_seconds: int = 300
    supported_spaces: str = "the_void"
    search_default_limit: int = 10

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("confirmation_token_ttl_seconds")
    @classmethod
    def validate_token_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("confirmation_token_ttl_seconds must be positive")
        return v

    @field_validator("cors_origins", "cors_allowed_headers", "supported_spaces", mode="before")
    @classmethod
    def parse_csv(cls, v) -> str:
        """Keep comma separated settings as strings, parse when needed."""
        if isinstance(v, list):
            return ",".join(v)
        return str(v)

    @staticmethod
    def _split(value: str) -> List[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    def get_cors_origins(self) -> List[str]:
        """Get CORS origins as list."""
        return self._split(self.cors_origins)

    def get_cors_headers(self) -> List[str]:
        """Get CORS headers as list."""
        return self._split(self.cors_allowed_headers)

    def get_supported_spaces(self) -> List[str]:
        """Get the space IDs memories can be published to."""
        return self._split(self.supported_spaces)

    def validate_required(self) -> List[str]:
        """
        Validate required settings for production.

        Returns:
            List of missing required settings
        """
        errors = []

        if not self.database_url:
            errors.append("DATABASE_URL is required")
        if not self.get_supported_spaces():
            errors.append("SUPPORTED_SPACES must name at least one space")
        if self.environment == "production" and self.auth_test_mode:
            errors.append("AUTH_TEST_MODE must be disabled in production")
        return errors

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create settings instance
settings = Settings()

# Validate on import (for production)
if os.getenv("VALIDATE_CONFIG", "false").lower() == "true":
    errors = settings.validate_required()
    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")
