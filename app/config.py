"""
Configuration module for environment variables.
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = Field(
        default="sqlite:///./portal.db",
        description="SQLAlchemy database URL"
    )
    db_pool_size: int = Field(default=10, description="Maximum pooled connections")
    db_connect_timeout: int = Field(
        default=5,
        description="Seconds to wait when opening a new database connection"
    )
    db_pool_timeout: int = Field(
        default=45,
        description="Seconds to wait for a free pooled connection"
    )

    # Auth
    jwt_secret: str = Field(default="CHANGE_THIS_SECRET")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_minutes: int = Field(
        default=60 * 24 * 30,
        description="Access token lifetime in minutes"
    )

    # Outbound notifications (WhatsApp gateway)
    notify_api_url: str = Field(default="https://api.betablaster.com/send")
    notify_api_key: str = Field(default="")
    notify_timeout_seconds: float = Field(default=10.0)

    # File storage
    storage_backend: str = Field(
        default="disk",
        description="Storage strategy for uploads: disk, memory or s3"
    )
    upload_dir: str = Field(default="./uploads")
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted upload in bytes"
    )
    s3_bucket: str = Field(default="")
    s3_access_key: str = Field(default="")
    s3_secret_key: str = Field(default="")
    s3_region: str = Field(default="us-east-1")
    s3_endpoint_url: str = Field(default="")
    s3_public_base_url: str = Field(
        default="",
        description="Public URL prefix for stored objects (defaults to the bucket URL)"
    )

    # HTTP
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed frontend origins"
    )
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)

    # Application Settings
    app_env: str = Field(default="development")
    log_level: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def allowed_origins(self) -> List[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if "http://localhost:3000" not in origins:
            origins.append("http://localhost:3000")
        return origins


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Convenience function for direct access
settings = get_settings()
