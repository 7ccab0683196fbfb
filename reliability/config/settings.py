"""
Application settings and configuration.
Uses pydantic-settings for environment variable parsing.
"""
from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "incident-reliability"
    app_env: str = Field(default="development", description="development, staging, production")
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = Field(default="console", description="console, json")

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Incident store
    store_backend: str = Field(default="memory", description="memory, sql")

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "reliability"
    postgres_user: str = "reliability"
    postgres_password: str = "reliability_secure_password_change_me"
    database_url: Optional[str] = None

    @property
    def pg_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # Per-incident locking
    lock_backend: str = Field(default="local", description="local, redis")
    lock_lease_seconds: float = 120.0
    lock_wait_seconds: float = 30.0

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_url: Optional[str] = None

    @property
    def redis_connection_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    # Repair invoker (asset pipeline / job dispatcher)
    repair_service_url: str = "http://localhost:8081"
    repair_timeout_seconds: float = 30.0

    # Ticket desk
    ticket_desk_url: Optional[str] = None
    ticket_desk_api_token: Optional[str] = None
    ticket_timeout_seconds: float = 15.0

    # Security
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            import json
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [v]
        return v

    # Escalation
    chronic_failure_threshold: int = Field(default=3, ge=1)

    # Bulk actions
    bulk_max_concurrency: int = Field(default=8, ge=1)
    bulk_max_batch_size: int = Field(default=500, ge=1)

    # Reliability metrics
    metrics_window_hours: int = Field(default=24, ge=1)
    integrity_service_url: Optional[str] = None
    integrity_timeout_seconds: float = 10.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience instance
settings = get_settings()
