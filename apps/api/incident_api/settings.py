"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "incidents"
    postgres_password: str = "incidents_dev_password"
    postgres_host: str = "localhost"
    postgres_db: str = "incidents"
    postgres_port: int = 5432
    sqlite_busy_timeout_seconds: int = 30

    # API
    api_port: int = 8000
    api_host: str = "0.0.0.0"
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Ledger
    ledger_max_retries: int = 5
    ledger_backoff_base_ms: int = 25
    ledger_backoff_max_ms: int = 1000

    # Export
    export_digest_prefix_chars: int = 16
    export_product_name: str = "SplitSchedule"

    # Readiness
    ready_check_migrations: bool = False

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.database_url_computed.startswith("sqlite"):
                raise ValueError(
                    "SQLite is not allowed outside development. "
                    "Set DATABASE_URL to a PostgreSQL instance."
                )
            if self.log_level.upper() == "DEBUG":
                raise ValueError(
                    "LOG_LEVEL=DEBUG is not allowed in production: incident content would be logged."
                )
        if self.ledger_max_retries < 0:
            raise ValueError("LEDGER_MAX_RETRIES must be >= 0")
        if self.ledger_backoff_base_ms < 0 or self.ledger_backoff_max_ms < self.ledger_backoff_base_ms:
            raise ValueError("LEDGER_BACKOFF_MAX_MS must be >= LEDGER_BACKOFF_BASE_MS >= 0")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
