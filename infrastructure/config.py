"""Application settings, read from environment variables and ``.env``"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    APP_NAME: str = "Hotel Reservation & Billing API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Database; leave unset to run on the in-memory store
    DATABASE_URL: Optional[str] = None
    DATABASE_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30, ge=1)
    CRON_SECRET: str = "change-me-cron-secret"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Load demo room types and rooms on startup
    SEED_DEMO_INVENTORY: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
