"""Application Settings - Central Configuration"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STATECRAFT_",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    storage_backend: str = "mongo"  # "mongo" or "memory"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "statecraft_dev"

    # Logging
    logs_path: str = "./logs"
    log_level: str = "INFO"
    log_to_file: bool = False

    # Transitions
    schedule_threshold_seconds: int = 60  # Further in the future than this = scheduled
    schedule_round_to_minute: bool = True
    execution_guard_scope: str = "request"  # "request" or "call"

    # Scheduler sweep
    sweep_enabled: bool = True
    sweep_interval_seconds: int = 60

    # State deactivation (bulk migration of targets)
    deactivation_batch_size: int = 100

    # CORS
    cors_origins: str = "*"

    # Environment
    environment: str = "development"
    debug: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string to list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def uses_memory_storage(self) -> bool:
        """Check if the non-durable in-process store is configured"""
        return self.storage_backend.lower() == "memory"

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
