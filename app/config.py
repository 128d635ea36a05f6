from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Lead Intake Service"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Lead store
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Customer store (read-only MySQL)
    customer_database_url: str | None = None
    customer_db_pool_size: int = 10

    # Uploads
    upload_dir: str = "uploads"
    max_upload_size_bytes: int = 10 * 1024 * 1024
    max_upload_files: int = 5

    # Reporting
    quality_campaign_id: str = "120237694055210170"
    quality_min_salary: int = 35000
    disbursed_status: str = "DISBURSED"

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "leads"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    @property
    def is_production(self) -> bool:
        """True when raw error details must be hidden from API responses."""
        return self.environment.strip().lower() == "production"

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
