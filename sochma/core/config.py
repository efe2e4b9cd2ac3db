"""
sochma/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, bot token, delivery policy)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="sochma",
        description="MongoDB database name"
    )
    LEDGER_BACKEND: Literal["mongo", "memory"] = Field(
        default="mongo",
        description="Where user records live: MongoDB or process memory (dev only)"
    )

    # Telegram
    TELEGRAM_BOT_TOKEN: Optional[str] = Field(
        default=None,
        description="Bot API token issued by @BotFather"
    )
    TELEGRAM_API_BASE_URL: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Secret echoed by Telegram in X-Telegram-Bot-Api-Secret-Token"
    )
    WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="Public URL Telegram should deliver updates to"
    )
    BOT_NAME: str = Field(
        default="Sochma Bot",
        description="Bot name shown in prompts"
    )

    # Outbound delivery
    DELIVERY_MAX_ATTEMPTS: int = Field(
        default=3,
        description="Maximum send attempts for transient delivery failures"
    )
    DELIVERY_BASE_DELAY_MS: int = Field(
        default=500,
        description="Base backoff delay between delivery attempts"
    )
    DELIVERY_MAX_DELAY_SECONDS: float = Field(
        default=5.0,
        description="Upper bound for a single backoff sleep (including retry_after)"
    )
    DELIVERY_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="HTTP timeout for Bot API calls"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("TELEGRAM_BOT_TOKEN")
    @classmethod
    def validate_bot_token(cls, v, info: ValidationInfo):
        """Ensure the bot token is set in production."""
        if info.data.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("TELEGRAM_BOT_TOKEN is required in production environment")
        return v

    @field_validator("LEDGER_BACKEND")
    @classmethod
    def validate_ledger_backend(cls, v, info: ValidationInfo):
        """In-memory records do not survive restarts; never allow them in production."""
        if info.data.get("ENVIRONMENT") == "production" and v == "memory":
            raise ValueError("LEDGER_BACKEND=memory is not allowed in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if settings.LEDGER_BACKEND == "mongo" and not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if settings.DELIVERY_MAX_ATTEMPTS < 1:
        errors.append("DELIVERY_MAX_ATTEMPTS must be at least 1")

    # Production-specific validations
    if settings.is_production:
        if not settings.TELEGRAM_BOT_TOKEN:
            errors.append("TELEGRAM_BOT_TOKEN is required in production")
        if not settings.TELEGRAM_WEBHOOK_SECRET:
            errors.append("TELEGRAM_WEBHOOK_SECRET is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
