"""
Configuration settings for the Occurrence Annotation Rules API.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    app_name: str = "Occurrence Annotation Rules API"
    app_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./annotations.db"  # Must be a SQLite URL

    # Authorization
    admin_role: str = "REGISTRY_ADMIN"  # May edit or delete anyone's resources

    # Paging
    default_page_size: int = 100
    max_page_size: int = 1000

    # API Security
    api_key: Optional[str] = None  # Shared secret the auth gateway must present
    allowed_origins: str = "*"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "ANNOTATION_"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
