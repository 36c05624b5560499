"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Database settings
    db_server: str = "localhost"
    db_name: str = "searchsync"
    db_user: str = "searchsync"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    sql_echo: bool = False

    # Meilisearch settings
    meilisearch_url: str = "http://localhost:7700"
    meilisearch_api_key: str = ""
    meilisearch_timeout: int = 10  # seconds per HTTP call
    meilisearch_task_timeout_ms: int = 30000  # max wait for a bulk task
    meilisearch_user_index: str = "users"

    # Search recovery settings (values <= 0 fall back to the defaults)
    search_recovery_delay_seconds: int = 300
    search_recovery_min_age_seconds: int = 300
    search_recovery_max_age_seconds: int = 3600
    search_recovery_max_duration_seconds: int = 120

    # Run the recovery loop inside the API process.
    # Set to False when a dedicated arq worker runs it instead.
    search_recovery_in_app: bool = True

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Redis settings (arq worker broker)
    redis_url: str = "redis://localhost:6379/0"

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )

    @property
    def sync_database_url(self) -> str:
        """Build PostgreSQL sync connection string for Alembic."""
        from urllib.parse import quote_plus
        return (
            f"postgresql+psycopg2://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
