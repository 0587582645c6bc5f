"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "inspection_approvals_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"

    # CORS - set to "*" to allow all origins
    cors_origins: str = "*"

    # Auto-approval time windows are written in the organization's wall-clock time
    local_timezone: str = "UTC"

    # Scheduler
    scheduler_enabled: bool = True
    batch_grouping_cron: str = "0 0 * * *"  # Daily at midnight
    retention_sweep_cron: str = "0 1 * * 0"  # Sundays at 01:00
    batch_retention_days: int = 30
    notification_dispatch_interval_seconds: int = 30
    notification_max_retries: int = 5

    # Optimistic concurrency
    cas_max_retries: int = 5

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
