"""Application configuration using Pydantic Settings."""

from typing import Optional

from pydantic import PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Job store
    DATABASE_URL: str = "sqlite:///./jobs.db"
    DATABASE_PASSWORD: str = ""  # Privileged credential, injected into DATABASE_URL when set

    # Completion providers
    LM_CLOUD_API_KEY: str = ""
    LM_CLOUD_PROVIDER: str = "gemini"  # 'gemini' or 'openai'
    LM_CLOUD_ENDPOINT: str = ""
    LM_CLOUD_MODEL: str = ""
    LM_FALLBACK_URL: str = ""  # LM Studio base URL
    LM_MAX_TOKENS: int = 2000
    LM_TEMPERATURE: float = 0.7
    PROVIDER_TIMEOUT: Optional[float] = None  # Seconds; unset disables the HTTP timeout

    # Scheduler
    MAX_CONCURRENCY: PositiveInt = 4
    POLL_INTERVAL: PositiveInt = 5000  # Milliseconds
    MAX_RETRIES: int = 3
    SHUTDOWN_TIMEOUT: float = 30.0
    SHUTDOWN_CHECK_INTERVAL: float = 1.0

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# Global settings instance
settings = Settings()
