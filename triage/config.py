from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.
    The .env file is only a fallback; real env vars take precedence.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Persistence
    DATABASE_URL: str = "sqlite:///./triage.db"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Webhook security - empty means the service reports not ready
    WEBHOOK_SECRET: str = ""

    # Retention and display
    MAX_STORED_RECORDS: int = 1000
    TITLE_MAX_LENGTH: int = 120
    DEFAULT_SOURCE_LABEL: str = "SMS"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


settings = get_settings()
