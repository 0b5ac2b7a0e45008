"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env file.
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DEMO_USERNAMES = ["staff", "manager", "owner", "developer", "support"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application
    # =========================================================================
    app_name: str = "POS Access Core"
    app_version: str = "1.0.0"
    debug: bool = False
    api_v1_prefix: str = "/api/v1"

    # =========================================================================
    # CORS
    # =========================================================================
    # Origins of the local POS front end; requests from anywhere else get no
    # CORS headers. JSON list in the environment, e.g. '["http://till:5173"]'.
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
        description="Browser origins allowed to call the API",
    )

    # =========================================================================
    # Logging
    # =========================================================================
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    # =========================================================================
    # Database
    # =========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./posauth.db",
        description="Credential store URL (async driver)",
    )

    # Sync URL for Alembic migrations
    database_url_sync: str = Field(
        default="sqlite:///./posauth.db",
        description="Credential store URL (sync driver for Alembic)",
    )

    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10
    auto_create_schema: bool = Field(
        default=True,
        description="Create missing tables when the store is opened",
    )

    # =========================================================================
    # Authentication & Lockout
    # =========================================================================
    max_failed_attempts: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures that lock an account",
    )
    lockout_minutes: int = Field(
        default=5,
        ge=1,
        description="Cool-down applied once an account is locked",
    )
    password_min_length: int = Field(default=8, ge=1)
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=31,
        description="bcrypt work factor for newly hashed passwords",
    )

    # =========================================================================
    # Sessions
    # =========================================================================
    session_timeout_minutes: int = Field(
        default=480,
        ge=1,
        description="Inactivity window after which a session expires (8 hours)",
    )
    session_check_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How often the session monitor re-checks the current session",
    )
    session_token_bytes: int = Field(default=32, ge=16)

    # =========================================================================
    # Demo Mode
    # =========================================================================
    # Passwordless login for showroom terminals. Never enable in production.
    demo_mode: bool = False
    demo_usernames: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DEMO_USERNAMES),
        description="Usernames allowed through the passwordless demo login",
    )
    demo_password: str = Field(
        default="password123",
        description="Password given to seeded demo users",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience alias
settings = get_settings()
