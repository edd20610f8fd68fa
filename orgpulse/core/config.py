import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "orgpulse"
    version: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATABASE_DSN: str = "sqlite:////tmp/orgpulse.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Hosted identity provider / database (Supabase)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_JWT_SECRET: str = ""
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    # Encryption of stored customer credentials (at least 32 characters)
    ENCRYPTION_KEY: str = ""

    # Payment provider
    STRIPE_SECRET_KEY: str = ""

    # Customer database queries
    ACTIVITY_FETCH_TIMEOUT: float = 30.0

    # Background billing sync (arq cron, UTC hour)
    BILLING_SYNC_CRON_HOUR: int = 3

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"


settings = Settings()


def configure_logging() -> None:
    """Configure root logging from settings.LOG_LEVEL."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
