"""
Merchandising Insights Engine
Centralized Configuration Management

Infrastructure configuration (database, cache, logging, sync, LLM) is read
from environment variables through Pydantic settings. Operator-tunable
analytics thresholds live in ``AppSettings`` and are persisted through the
key-value store instead.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="merch_insights", alias="database", description="Database name")
    user: str = Field(default="merch", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_size: int = Field(default=5, description="Connection pool size")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg, or the explicit override"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Configuration (remote state store)"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=20, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SyncSettings(BaseSettings):
    """Remote state synchronisation"""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    enabled: bool = Field(default=True, description="Push computed state to the remote store")
    state_key: str = Field(default="merch_insights:state", description="Remote key holding the state blob")
    debounce_seconds: float = Field(default=2.0, description="Quiet period before a pending push is written")
    retry_attempts: int = Field(default=3, description="Attempts per push before reporting failure")
    retry_backoff_seconds: float = Field(default=1.0, description="Base backoff between attempts")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class LLMSettings(BaseSettings):
    """Generative enrichment configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY", description="OpenAI API key")
    completion_model: str = Field(default="gpt-4o-mini", alias="LLM_COMPLETION_MODEL", description="Chat model")
    max_tokens: int = Field(default=600, alias="LLM_COMPLETION_MAX_TOKENS", description="Completion token limit")
    temperature: float = Field(default=0.4, alias="LLM_COMPLETION_TEMPERATURE", description="Sampling temperature")
    timeout_seconds: float = Field(default=20.0, alias="LLM_TIMEOUT_SECONDS", description="Request timeout")

    @property
    def is_configured(self) -> bool:
        """True when a non-empty API key is present"""
        return bool(self.api_key and self.api_key.get_secret_value().strip())


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="merch-insights", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()
