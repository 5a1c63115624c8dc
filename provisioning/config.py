# ============================================================================
# Freelancer Provisioning - Application Configuration
# ============================================================================
"""
Application configuration module using Pydantic Settings.

This module defines all configuration parameters for the provisioning service,
including:
- API/CORS settings
- Database connection and pooling
- Redis change relay
- Platform call timeouts and concurrency bounds

Environment Variables:
    Every field can be overridden by an upper-case environment variable of
    the same name (e.g. PLATFORM_CALL_TIMEOUT=10) or by a `.env` file.

Usage:
    from provisioning.config import settings
    timeout = settings.platform_call_timeout
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # API SETTINGS
    # =========================================================================
    api_title: str = "Freelancer Provisioning API"
    api_version: str = "2.0.0"
    debug: bool = Field(default=False, description="Enable verbose logging & dev helpers")
    log_level: str = Field(default="INFO", description="Root log level")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Allowed origins for CORS",
    )

    # =========================================================================
    # DATABASE
    # =========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/provisioning.db",
        description="SQLAlchemy async database URL",
    )
    db_pool_size: int = Field(default=20, description="Connection pool size (PostgreSQL)")
    db_max_overflow: int = Field(default=40, description="Extra connections during peaks")
    db_pool_recycle: int = Field(default=3600, description="Recycle connections after N seconds")
    sql_echo: bool = Field(default=False, description="Echo SQL statements")

    # =========================================================================
    # CHANGE RELAY
    # =========================================================================
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for cross-process change events; unset keeps events in-process",
    )
    redis_channel_prefix: str = Field(default="provisioning", description="Channel name prefix")

    # =========================================================================
    # PLATFORM OPERATIONS
    # =========================================================================
    platform_call_timeout: float = Field(
        default=30.0, gt=0, description="Timeout (s) for each remote platform call"
    )
    max_concurrent_platforms: int = Field(
        default=1, ge=1, le=32, description="Platforms provisioned in parallel per batch"
    )
    max_concurrent_entities: int = Field(
        default=1, ge=1, le=64, description="Freelancers processed in parallel by bulk operations"
    )


# Global settings instance (imported elsewhere)
settings = Settings()
