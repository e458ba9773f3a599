"""
Application settings using Pydantic.

Provides environment-based configuration loading with CLOUDRES_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Debug
    debug: bool = False

    # Region substituted when a strategy entry omits one
    default_region: str = "eu-west-1"

    # AWS (worker queue, secrets sink)
    aws_region: str = "eu-west-1"

    # Strategy configuration store: memory, file
    strategy_store: str = "file"
    strategy_config_path: str = "cloud-resources-strategies.yaml"

    # Output sink: memory, secretsmanager
    output_sink: str = "memory"
    output_secret_prefix: str = "cloud-resources/"

    # Request store: memory, sql
    request_store: str = "memory"
    database_url: str = "postgresql+psycopg://localhost/cloudres"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Requeue intervals (seconds)
    pending_requeue_seconds: float = 60.0
    in_progress_requeue_seconds: float = 60.0
    complete_requeue_seconds: float = 300.0
    delete_requeue_seconds: float = 30.0
    error_requeue_seconds: float = 30.0
    conflict_requeue_seconds: float = 5.0

    # Worker pool
    worker_count: int = 4

    # Queue settings
    sqs_queue_url: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "CLOUDRES_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
