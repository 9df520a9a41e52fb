"""Application configuration and environment settings.

Settings are read from the process environment and an optional `.env`
file.  Database connection parameters can be given either as a single
DSN or as individual host/port/user fields.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Application settings."""

    # Database
    postgres_dsn: Optional[str] = Field(None, alias="POSTGRES_DSN")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")
    db_ssl_mode: str = Field("disable", alias="DB_SSL_MODE")

    # Connection pool
    db_max_open_conns: int = Field(10, alias="DB_MAX_OPEN_CONNS", ge=1)
    db_max_idle_conns: int = Field(5, alias="DB_MAX_IDLE_CONNS", ge=0)
    db_conn_max_lifetime: int = Field(300, alias="DB_CONN_MAX_LIFETIME")

    # Server
    server_host: str = Field("0.0.0.0", alias="SERVER_HOST")
    server_port: int = Field(8080, alias="SERVER_PORT")

    # Cleanup
    default_batch_size: int = Field(5000, alias="DEFAULT_BATCH_SIZE", gt=0)
    max_batch_size: int = Field(100_000, alias="MAX_BATCH_SIZE", gt=0)
    max_request_time: float = Field(1800.0, alias="MAX_REQUEST_TIME", gt=0)
    sync_request_timeout: float = Field(300.0, alias="SYNC_REQUEST_TIMEOUT", gt=0)
    async_run_timeout: float = Field(3600.0, alias="ASYNC_RUN_TIMEOUT", gt=0)
    task_retention_seconds: float = Field(3600.0, alias="TASK_RETENTION_SECONDS", ge=0)
    batch_timeout_seconds: float = Field(30.0, alias="BATCH_TIMEOUT_SECONDS", gt=0)
    batch_pause_ms: int = Field(100, alias="BATCH_PAUSE_MS", ge=0)
    cleanup_schema: str = Field("public", alias="CLEANUP_SCHEMA")
    cleanup_key_column: str = Field("id", alias="CLEANUP_KEY_COLUMN")
    cleanup_timestamp_column: str = Field("created_at", alias="CLEANUP_TIMESTAMP_COLUMN")

    # General
    environment: str = Field("development", alias="ENVIRONMENT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_allowed_origins: str = Field("http://localhost:3000", alias="CORS_ALLOWED_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the backing store.

        `POSTGRES_DSN` wins when set; otherwise the URL is assembled from
        the individual DB_* fields.
        """
        if self.postgres_dsn:
            return self.postgres_dsn
        url = URL.create(
            "postgresql+psycopg",
            username=self.db_user,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
            query={"sslmode": self.db_ssl_mode},
        )
        return url.render_as_string(hide_password=False)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def sync_timeout(self) -> float:
        """Budget for a synchronous run, capped by MAX_REQUEST_TIME."""
        return min(self.sync_request_timeout, self.max_request_time)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings factory.

    FastAPI dependencies can call this function to obtain a shared
    Settings instance.  Using `lru_cache` ensures the environment is
    parsed only once and the resulting object is reused.
    """
    return Settings()
