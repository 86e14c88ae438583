"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "placement_hub"

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # Uploads (resumes, logos)
    upload_dir: str = "uploads"
    max_upload_size_mb: int = 5
    allowed_resume_extensions: str = ".pdf,.doc,.docx,.txt"

    # Lifecycle
    notification_inbox_limit: int = 100
    enforce_status_graph: bool = True

    # App
    log_level: str = "INFO"
    debug: bool = True

    @property
    def resume_extensions(self) -> List[str]:
        """Allowed resume extensions as a list"""
        return [ext.strip().lower() for ext in self.allowed_resume_extensions.split(",") if ext.strip()]

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
