"""Application configuration using Pydantic settings."""

import os
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Leadflow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    MFA_TOKEN_EXPIRE_MINUTES: int = 5  # Lifetime of the mfa_pending token issued by /login
    MASTER_ENCRYPTION_KEY: str
    ENCRYPTION_KEY_V1: Optional[str] = None  # Previous key, decryption only (after rotation)
    ENCRYPTION_CURRENT_VERSION: int = 1

    # Two-factor authentication
    TOTP_ISSUER: str = "Leadflow"  # Shown as the account label in authenticator apps
    TOTP_VALID_WINDOW: int = 1  # Accepted clock drift, in 30-second steps either side
    BACKUP_CODE_COUNT: int = 8
    BACKUP_CODE_LENGTH: int = 8

    # Lead distribution
    # Roles used for tenants that have never saved a distribution config
    DISTRIBUTION_DEFAULT_ROLES: list[str] = ["user", "manager"]

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Trusted hosts for production (prevents host header attacks)
    # The validator will REJECT "*" in production
    ALLOWED_HOSTS: list[str] = ["*"]

    # Monitoring
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is not using insecure defaults in production."""
        insecure_defaults = [
            "dev-secret-key-change-in-production",
            "your-secret-key-here",
            "change-me",
            "secret",
        ]

        # Read ENVIRONMENT directly, Settings is not fully initialized yet
        environment = os.getenv("ENVIRONMENT", "development")

        if environment == "production" and (v in insecure_defaults or len(v) < 32):
            raise ValueError(
                "Insecure SECRET_KEY detected in production! "
                "Generate a secure key with: openssl rand -hex 32"
            )

        return v

    @field_validator("ALLOWED_HOSTS")
    @classmethod
    def validate_allowed_hosts(cls, v: list[str]) -> list[str]:
        """Validate ALLOWED_HOSTS is configured for production."""
        environment = os.getenv("ENVIRONMENT", "development")

        if environment == "production" and "*" in v:
            raise ValueError(
                "ALLOWED_HOSTS=['*'] is insecure in production! "
                "Set specific domains like ['app.leadflow.io', 'api.leadflow.io']"
            )

        return v

    @field_validator("TOTP_VALID_WINDOW")
    @classmethod
    def validate_totp_window(cls, v: int) -> int:
        """Keep clock-skew tolerance small: at most two steps (60s) either side."""
        if v < 0 or v > 2:
            raise ValueError("TOTP_VALID_WINDOW must be between 0 and 2")
        return v

    @field_validator("BACKUP_CODE_COUNT", "BACKUP_CODE_LENGTH")
    @classmethod
    def validate_backup_code_shape(cls, v: int) -> int:
        """Backup code count and length must be positive."""
        if v < 1:
            raise ValueError("Backup code count and length must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
