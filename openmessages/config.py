from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///openmessages.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Backfill window
    BACKFILL_CONVERSATION_LIMIT: int = 100
    BACKFILL_MESSAGE_LIMIT: int = 20
    BACKFILL_FOLDER: str = "inbox"

    # HTTP server
    HOST: str = "127.0.0.1"
    PORT: int = 7007


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()
