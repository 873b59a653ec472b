"""
Configuration system with environment-based settings.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Key/value storage
    KV_BACKEND: Literal["redis", "memory"] = "redis"
    KV_NAMESPACE: str = "seo"
    REDIS_DSN: RedisDsn = Field("redis://localhost:6379/0", description="Redis connection string")
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: float = 5.0

    # Ranking
    RANKING_MAX_ENTRIES: int = Field(100, ge=1)
    RANKING_PAGE_SIZE: int = Field(20, ge=1, le=100)

    # Outbound HTTP (liveness probe, snapshot, robots.txt, sitemap)
    HTTP_REQUEST_TIMEOUT: float = 30.0
    HTTP_USER_AGENT: str = "SEOReadinessBot/1.0 (+https://seoplatform.com/bot)"

    # PageSpeed Insights
    PAGESPEED_API_URL: str = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
    PAGESPEED_API_KEY: str = ""
    PAGESPEED_TIMEOUT: float = 90.0   # Lighthouse runs are slow

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("KV_NAMESPACE")
    @classmethod
    def strip_namespace_separator(cls, v: str) -> str:
        return v.rstrip(":")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()
