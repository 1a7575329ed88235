"""Application settings using Pydantic BaseSettings."""

import os
import re

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_async_database_url() -> str:
    """Get database URL converted for asyncpg driver."""
    url = os.environ.get("DATABASE_URL", "") or settings.database_url
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
        url = url.rstrip('?&')
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Postgres in production, sqlite+aiosqlite for local runs
    database_url: str = "sqlite+aiosqlite:///./aquacare.db"

    # JWT (tokens are issued by the auth service, we only verify them)
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Contract defaults when a plan template leaves them unset
    default_amc_duration_months: int = 12
    default_amc_service_quota: int = 4
    default_rental_duration_months: int = 1

    # Dashboard window for "expiring soon" tiles and upcoming-expiry lists
    expiring_soon_days: int = 30

    # Human-readable id prefixes
    amc_code_prefix: str = "AMC"
    rental_code_prefix: str = "RNT"
    ticket_code_prefix: str = "SR"
    customer_code_prefix: str = "CUST"

    # Shared secret for /workers hooks; empty disables the check
    worker_token: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
