"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated CORS origins

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/smartzap"
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (account limits cache)
    redis_url: str = "redis://localhost:6379/0"

    # WhatsApp Cloud API credentials (saved account credentials)
    whatsapp_phone_number_id: str = ""
    whatsapp_access_token: str = ""
    whatsapp_api_version: str = "v24.0"
    meta_api_timeout_seconds: float = 10.0

    # Forces the 5 users/day test limits when validating campaigns
    debug_low_limit: bool = False

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
