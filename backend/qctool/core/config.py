"""
Centralised application configuration.

All environment variables are read through get_settings(); modules must not
call os.environ directly.
"""
from functools import lru_cache
from typing import List, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvConfigError(Exception):
    """Raised when required environment variables are missing."""

    def __init__(self, missing_keys: list[str]):
        self.missing_keys = missing_keys
        super().__init__(
            f"Missing required environment variables: {', '.join(missing_keys)}. Check your .env file."
        )


class Settings(BaseSettings):
    """Application settings."""

    # ========================================================================
    # Application
    # ========================================================================
    app_name: str = "QC Tool"
    app_version: str = "1.0.0"
    debug: bool = False

    # ========================================================================
    # API
    # ========================================================================
    api_prefix: str = "/api/v1"
    cors_origins: Union[List[str], str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from a comma separated string or a list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ========================================================================
    # Database
    # ========================================================================
    database_url: str = "sqlite+aiosqlite:///./data/qctool.db"

    # Celery workers cannot use async drivers, see get_sync_database_url()
    sync_database_url: Optional[str] = None

    # ========================================================================
    # Redis / Cache
    # ========================================================================
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None
    cache_backend: str = "redis"  # redis or memory

    # ========================================================================
    # Celery
    # ========================================================================
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    # ========================================================================
    # Gemini
    # ========================================================================
    gemini_enabled: bool = True
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_verify_ssl: bool = True
    gemini_timeout: float = 120.0  # seconds per HTTP call
    gemini_max_retries: int = 3
    gemini_base_delay: float = 0.5  # seconds, doubled per attempt

    # ========================================================================
    # AI Validation
    # ========================================================================
    ai_validation_chunk_size: int = 25
    ai_validation_cache_ttl: int = 900  # 15 minutes (seconds)
    ai_validation_time_limit: int = 900  # 8 chunks x ~120s
    ai_validation_task_ttl_minutes: int = 20
    ai_validation_max_inline: int = 100
    ai_validation_max_queued: int = 200
    ai_validation_rate_limit: int = 10  # inline requests per minute per client

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def get_celery_broker_url(self) -> str:
        """Return the Celery broker URL, adding the Redis password if needed."""
        if "@" not in self.celery_broker_url and self.redis_password:
            return self.celery_broker_url.replace("redis://", f"redis://:{self.redis_password}@")
        return self.celery_broker_url

    def get_celery_result_backend(self) -> str:
        """Return the Celery result backend URL, adding the Redis password if needed."""
        if "@" not in self.celery_result_backend and self.redis_password:
            return self.celery_result_backend.replace(
                "redis://", f"redis://:{self.redis_password}@"
            )
        return self.celery_result_backend

    def get_redis_url_with_password(self) -> str:
        """Return the cache Redis URL, adding the Redis password if needed."""
        if self.redis_password and "@" not in self.redis_url:
            return self.redis_url.replace("redis://", f"redis://:{self.redis_password}@")
        return self.redis_url

    def get_sync_database_url(self) -> str:
        """
        Convert the async database URL to a sync URL for Celery workers.

        Converts:
        - postgresql+asyncpg://... -> postgresql://...
        - sqlite+aiosqlite://... -> sqlite://...

        Returns:
            Sync database URL
        """
        if self.sync_database_url:
            return self.sync_database_url

        url = self.database_url

        if "postgresql+asyncpg://" in url:
            return url.replace("postgresql+asyncpg://", "postgresql://")

        if "sqlite+aiosqlite://" in url:
            return url.replace("sqlite+aiosqlite://", "sqlite://")

        return url

    def validate_production_settings(self) -> None:
        """
        Check settings that must be present outside debug mode.

        Raises:
            EnvConfigError: If required settings are missing
        """
        if self.debug:
            return

        missing_keys = []

        if self.gemini_enabled and not self.gemini_api_key.strip():
            missing_keys.append("GEMINI_API_KEY")

        if missing_keys:
            raise EnvConfigError(missing_keys)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
