"""Application settings via Pydantic Settings."""

from functools import lru_cache
import json
import logging

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("uvicorn.error")

DEFAULT_REFRESH_INTERVAL_SECONDS = 120000
DEFAULT_FETCH_CONCURRENCY = 100


def _positive_int_or_default(v: object, default: int, name: str) -> int:
    """Coerce `v` to a positive int, falling back to `default` when absent or invalid."""
    if v is None or (isinstance(v, str) and not v.strip()):
        return default
    try:
        value = int(v)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name}={v!r}, using default {default}")
        return default
    if value < 1:
        logger.warning(f"Invalid {name}={v!r}, using default {default}")
        return default
    return value


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Best Stories API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Upstream (Hacker News API), e.g. https://hacker-news.firebaseio.com/v0/
    hacker_news_api_url: str = Field(
        validation_alias=AliasChoices("HACKER_NEWS_API_URL", "HACKERNEWS_API_URL"),
    )
    upstream_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("UPSTREAM_TIMEOUT_SECONDS"),
        gt=0,
    )

    @field_validator("hacker_news_api_url")
    @classmethod
    def _normalize_base_url(cls, v: str) -> str:
        """Ensure a trailing slash so relative resources resolve under the base path."""
        v = v.strip()
        if not v:
            raise ValueError("HACKER_NEWS_API_URL must not be empty")
        return v if v.endswith("/") else v + "/"

    # Cache engine
    cache_refresh_interval_seconds: int = Field(
        default=DEFAULT_REFRESH_INTERVAL_SECONDS,
        validation_alias=AliasChoices("CACHE_REFRESH_INTERVAL_SECONDS"),
        description="Wait between the end of one build/refresh cycle and the start of the next",
    )
    fetch_concurrency: int = Field(
        default=DEFAULT_FETCH_CONCURRENCY,
        validation_alias=AliasChoices("FETCH_CONCURRENCY", "CONCURRENCY"),
        description="Max in-flight item fetches per cycle",
    )

    @field_validator("cache_refresh_interval_seconds", mode="before")
    @classmethod
    def _parse_refresh_interval(cls, v: object) -> int:
        return _positive_int_or_default(
            v, DEFAULT_REFRESH_INTERVAL_SECONDS, "CACHE_REFRESH_INTERVAL_SECONDS"
        )

    @field_validator("fetch_concurrency", mode="before")
    @classmethod
    def _parse_fetch_concurrency(cls, v: object) -> int:
        return _positive_int_or_default(v, DEFAULT_FETCH_CONCURRENCY, "FETCH_CONCURRENCY")

    cache_build_retry_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices("CACHE_BUILD_RETRY_SECONDS"),
        gt=0.0,
        description="Wait before retrying a failed initial build (capped by the refresh interval)",
    )

    # Per-item retry (off by default: one attempt per item per cycle)
    item_fetch_retries: int = Field(
        default=0,
        validation_alias=AliasChoices("ITEM_FETCH_RETRIES"),
        ge=0,
        le=5,
    )
    item_fetch_retry_backoff_seconds: float = Field(
        default=0.5,
        validation_alias=AliasChoices("ITEM_FETCH_RETRY_BACKOFF_SECONDS"),
        ge=0.0,
    )

    # Read API
    cache_not_ready_retry_after_seconds: int = Field(
        default=5,
        validation_alias=AliasChoices("CACHE_NOT_READY_RETRY_AFTER_SECONDS"),
        ge=1,
    )

    # CORS
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        validation_alias=AliasChoices("CORS_ORIGINS", "ALLOWED_ORIGINS"),
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v: object) -> list[str]:
        """
        Accept either:
        - JSON array string: '["https://a.com","http://localhost:3000"]'
        - Comma-separated string: "https://a.com,http://localhost:3000"
        - Already-parsed list[str]
        """
        if v is None:
            return []
        if isinstance(v, list):
            return [str(x).strip() for x in v if str(x).strip()]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError:
                    parsed = s.split(",")
                if isinstance(parsed, list):
                    return [str(x).strip() for x in parsed if str(x).strip()]
                return [str(parsed).strip()]
            return [part.strip() for part in s.split(",") if part.strip()]
        return [str(v).strip()] if str(v).strip() else []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
