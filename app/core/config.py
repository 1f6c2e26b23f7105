"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "Audit Tracker"
    APP_ENV: str = Field(default="local")
    DEBUG: bool = Field(default=False)

    # Database settings - generic connection string (highest priority)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Database connection URL (full URL)",
    )

    # Hosted Postgres plugin raw vars (PG*)
    PGUSER: Optional[str] = Field(default=None)
    PGPASSWORD: Optional[str] = Field(default=None)
    PGHOST: Optional[str] = Field(default=None)
    PGPORT: Optional[str] = Field(default=None)
    PGDATABASE: Optional[str] = Field(default=None)

    # Local docker-compose Postgres settings (fallback for local dev)
    # Note: No default passwords - must be set via environment variables
    POSTGRES_USER: Optional[str] = Field(default=None)
    POSTGRES_PASSWORD: Optional[str] = Field(default=None)
    POSTGRES_HOST: Optional[str] = Field(default=None)
    POSTGRES_PORT: str = Field(default="5432")
    POSTGRES_DB: str = Field(default="audit_tracker")

    @property
    def sqlalchemy_database_uri(self) -> str:
        """
        Build SQLAlchemy database URI with priority:
        1. DATABASE_URL (full URL)
        2. PG* vars (hosted Postgres plugin raw env vars)
        3. Local docker-compose Postgres (POSTGRES_*)
        4. SQLite (local development without Docker)
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.PGUSER and self.PGHOST and self.PGDATABASE:
            password = quote_plus(self.PGPASSWORD or "")
            host = self.PGHOST
            port = self.PGPORT or "5432"
            return f"postgresql+psycopg2://{self.PGUSER}:{password}@{host}:{port}/{self.PGDATABASE}"

        # Only use if POSTGRES_HOST env var is explicitly set AND all required vars are present
        if os.getenv("POSTGRES_HOST") and self.POSTGRES_USER and self.POSTGRES_PASSWORD:
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql+psycopg2://"
                f"{self.POSTGRES_USER}:{password}@"
                f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./audit_tracker.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:8000"]',
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not JSON, treat as comma-separated
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # API Authentication
    API_KEY: Optional[str] = Field(
        default=None,
        description="Static API key required on every request. Leave empty to disable authentication.",
    )

    # Overdue sweep
    SWEEP_BATCH_SIZE: int = Field(
        default=200,
        ge=1,
        description="Number of observations loaded per batch by the overdue sweep",
    )

    # Notifications
    NOTIFICATIONS_ENABLED: bool = Field(default=True)
    NOTIFICATIONS_ASYNC: bool = Field(
        default=True,
        description="Dispatch notifications on a background thread pool; set False to deliver inline after commit",
    )
    NOTIFICATION_WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="Incoming webhook (e.g. Microsoft Teams) that receives notification cards",
    )
    NOTIFICATION_TIMEOUT_SECONDS: float = Field(default=5.0)
    FRONTEND_URL: str = Field(default="http://localhost:3000")

    # Due date reminders are sent this many days before the target date
    REMINDER_DAYS: Union[str, List[int]] = Field(default="[7, 3, 1]")

    @field_validator("REMINDER_DAYS")
    @classmethod
    def parse_reminder_days(cls, v):
        """Parse REMINDER_DAYS from a JSON list or comma-separated string."""
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                v = [item.strip() for item in v.split(",") if item.strip()]
        return sorted({int(day) for day in v}, reverse=True)

    SEED_DEFAULT_SLA_RULES: bool = Field(
        default=True,
        description="Seed the default SLA rule per risk rating on startup when no rules exist",
    )

    def is_webhook_configured(self) -> bool:
        """Check if a notification webhook URL is configured and not empty."""
        return (
            self.NOTIFICATION_WEBHOOK_URL is not None
            and self.NOTIFICATION_WEBHOOK_URL.strip() != ""
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
