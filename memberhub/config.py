"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Authentication (session tokens)
    # ==========================================================================

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30
    jwt_refresh_token_expire_days: int = 7

    # ==========================================================================
    # Authority store
    # ==========================================================================

    # "local" (in-memory, seeded from YAML) or "postgrest"
    authority_backend: str = "local"
    authority_url: str = ""
    authority_api_key: str = ""

    # Per-call bound, and total attempts for idempotent reads
    authority_timeout_seconds: float = 5.0
    authority_retry_attempts: int = 2
    authority_retry_wait_seconds: float = 0.2

    # Development seed data for the local backend
    seed_file: str = ""

    # ==========================================================================
    # Role cache & sync
    # ==========================================================================

    role_cache_ttl_seconds: float = 300.0
    role_cache_stale_while_revalidate: bool = True
    sync_max_concurrency: int = 5

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def use_postgrest(self) -> bool:
        """Whether the remote authority store should be used."""
        return self.authority_backend == "postgrest" and bool(self.authority_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
