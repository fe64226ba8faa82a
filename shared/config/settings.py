"""
Centralized configuration management for Buon Umore services.
Uses Pydantic Settings for validation and type safety.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppBaseSettings(BaseSettings):
    """Base settings with shared configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class DatabaseSettings(AppBaseSettings):
    """Database configuration settings."""

    postgres_user: str = Field(
        default="postgres",
        validation_alias="POSTGRES_USER",
    )
    postgres_password: str = Field(
        default="postgres",
        validation_alias="POSTGRES_PASSWORD",
    )
    postgres_db: str = Field(
        default="buonumore",
        validation_alias="POSTGRES_DB",
    )
    postgres_host: str = Field(
        default="postgres",
        validation_alias="POSTGRES_HOST",
    )
    postgres_port: int = Field(
        default=5432,
        validation_alias="POSTGRES_PORT",
    )
    # Declared last so the validator sees the individual parts.
    database_url: Optional[str] = Field(
        default=None,
        validation_alias="DATABASE_URL",
    )

    @validator("database_url", pre=True, always=True)
    def validate_database_url(cls, v, values):
        """Compose the URL from its parts when DATABASE_URL is not set."""
        if not v:
            user = values.get("postgres_user", "postgres")
            password = values.get("postgres_password", "")
            host = values.get("postgres_host", "postgres")
            port = values.get("postgres_port", 5432)
            db = values.get("postgres_db", "buonumore")
            return f"postgresql://{user}:{password}@{host}:{port}/{db}"
        return v


class RedisSettings(AppBaseSettings):
    """Redis configuration settings."""

    redis_host: str = Field(
        default="redis",
        validation_alias="REDIS_HOST",
    )
    redis_port: int = Field(
        default=6379,
        validation_alias="REDIS_PORT",
    )
    redis_db: int = Field(
        default=0,
        validation_alias="REDIS_DB",
    )
    redis_password: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_PASSWORD",
    )
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_URL",
    )

    @validator("redis_url", pre=True, always=True)
    def validate_redis_url(cls, v, values):
        """Ensure Redis URL is properly formatted."""
        if not v:
            host = values.get("redis_host", "redis")
            port = values.get("redis_port", 6379)
            db = values.get("redis_db", 0)
            password = values.get("redis_password")
            if password:
                return f"redis://:{password}@{host}:{port}/{db}"
            return f"redis://{host}:{port}/{db}"
        return v


class OpenAISettings(AppBaseSettings):
    """OpenAI API configuration for the positive-news generator."""

    api_key: Optional[str] = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
    )
    model: str = Field(
        default="gpt-4o-mini",
        validation_alias="OPENAI_MODEL",
    )
    max_tokens: int = Field(
        default=4000,
        validation_alias="OPENAI_MAX_TOKENS",
    )
    temperature: float = Field(
        default=0.7,
        validation_alias="OPENAI_TEMPERATURE",
    )


class ServiceSettings(AppBaseSettings):
    """Service-specific configuration settings."""

    default_category: str = Field(
        default="Generale",
        validation_alias="DEFAULT_CATEGORY",
    )
    cache_window: int = Field(
        default=40,
        validation_alias="CACHE_WINDOW",
    )
    article_retention_days: int = Field(
        default=7,
        validation_alias="ARTICLE_RETENTION_DAYS",
    )
    notification_seconds: float = Field(
        default=4.0,
        validation_alias="NOTIFICATION_SECONDS",
    )
    auth_stream: str = Field(
        default="auth_events",
        validation_alias="AUTH_STREAM",
    )
    auth_session_key: str = Field(
        default="auth:session",
        validation_alias="AUTH_SESSION_KEY",
    )
    consumer_group_prefix: str = Field(
        default="buonumore",
        validation_alias="CONSUMER_GROUP_PREFIX",
    )
    max_retries: int = Field(
        default=3,
        validation_alias="MAX_RETRIES",
    )
    retry_delay: float = Field(
        default=1.0,
        validation_alias="RETRY_DELAY",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        validation_alias="RETRY_BACKOFF_FACTOR",
    )
    http_timeout: float = Field(
        default=30.0,
        validation_alias="HTTP_TIMEOUT",
    )
    redis_timeout: float = Field(
        default=5.0,
        validation_alias="REDIS_TIMEOUT",
    )

    @validator("cache_window", "article_retention_days")
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


class LoggingSettings(AppBaseSettings):
    """Logging configuration settings."""

    level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        validation_alias="LOG_FORMAT",
    )
    include_correlation_id: bool = Field(
        default=True,
        validation_alias="LOG_INCLUDE_CORRELATION_ID",
    )
    json_logs: bool = Field(
        default=False,
        validation_alias="JSON_LOGS",
    )


class Settings(AppBaseSettings):
    """Main settings class that combines all configuration sections."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    service_name: str = Field(
        default="buonumore",
        validation_alias="SERVICE_NAME",
    )
    environment: str = Field(
        default="development",
        validation_alias="ENVIRONMENT",
    )
    version: str = Field(
        default="1.0.0",
        validation_alias="SERVICE_VERSION",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

