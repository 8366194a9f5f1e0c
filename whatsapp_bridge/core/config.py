"""
whatsapp_bridge/core/config.py

Purpose: Application configuration

- Loads environment variables (and .env)
- Centralizes collaborator URLs, session storage and reconnect tuning
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # HTTP server
    HOST: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to"
    )
    PORT: int = Field(
        default=3000,
        description="HTTP server port"
    )

    # Credential storage (one sub-directory per ecommercant)
    SESSION_DIR: str = Field(
        default="./sessions",
        description="Root directory holding per-merchant WhatsApp credentials"
    )

    # Collaborators
    DB_SERVICE_URL: str = Field(
        default="http://localhost:8080",
        description="Session persistence service base URL"
    )
    AI_SERVICE_URL: str = Field(
        default="http://localhost:8080",
        description="AI response service base URL"
    )
    COLLABORATOR_TIMEOUT: Optional[float] = Field(
        default=None,
        description="Timeout in seconds for collaborator calls (None = no timeout)"
    )

    # WhatsApp protocol bridge
    WHATSAPP_BRIDGE_URL: str = Field(
        default="ws://localhost:3001",
        description="Websocket endpoint of the WhatsApp protocol bridge"
    )
    WHATSAPP_COMMAND_TIMEOUT: Optional[float] = Field(
        default=None,
        description="Timeout in seconds for bridge commands (None = wait for transport failure)"
    )
    PRINT_QR_IN_TERMINAL: bool = Field(
        default=True,
        description="Print each new QR code to the operator console"
    )

    # Message routing
    DEFAULT_COUNTRY_CODE: str = Field(
        default="212",
        description="Country code prefixed to local phone numbers"
    )
    SESSION_INIT_PREFIX: str = Field(
        default="IA-AUTO:",
        description="Sentinel that starts a session-init message"
    )
    CONTEXT_TTL_MINUTES: int = Field(
        default=1440,
        description="Lifetime of a cached conversation context (0 = never expires)"
    )

    # Reconnect policy
    RECONNECT_MAX_ATTEMPTS: int = Field(
        default=10,
        description="Consecutive failed connection attempts before giving up"
    )
    RECONNECT_BASE_DELAY: float = Field(
        default=1.0,
        description="Initial reconnect delay in seconds"
    )
    RECONNECT_MAX_DELAY: float = Field(
        default=60.0,
        description="Upper bound of the reconnect delay in seconds"
    )
    RECONNECT_JITTER: float = Field(
        default=1.0,
        description="Maximum random jitter added to each reconnect delay"
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
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @field_validator("DB_SERVICE_URL", "AI_SERVICE_URL", "WHATSAPP_BRIDGE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Collaborator URLs are joined with absolute paths."""
        return v.rstrip("/")

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


def validate_settings(config: Optional[Settings] = None):
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    config = config or settings
    errors = []

    if not config.DB_SERVICE_URL:
        errors.append("DB_SERVICE_URL is required")

    if not config.AI_SERVICE_URL:
        errors.append("AI_SERVICE_URL is required")

    if not config.WHATSAPP_BRIDGE_URL:
        errors.append("WHATSAPP_BRIDGE_URL is required")

    if not config.SESSION_DIR:
        errors.append("SESSION_DIR is required")

    if not config.DEFAULT_COUNTRY_CODE.isdigit():
        errors.append("DEFAULT_COUNTRY_CODE must contain digits only")

    if not config.SESSION_INIT_PREFIX:
        errors.append("SESSION_INIT_PREFIX must not be empty")

    if config.RECONNECT_MAX_ATTEMPTS < 1:
        errors.append("RECONNECT_MAX_ATTEMPTS must be at least 1")

    if config.RECONNECT_BASE_DELAY < 0 or config.RECONNECT_MAX_DELAY < 0:
        errors.append("Reconnect delays must not be negative")

    if config.CONTEXT_TTL_MINUTES < 0:
        errors.append("CONTEXT_TTL_MINUTES must not be negative")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
