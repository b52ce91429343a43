"""
Application configuration using Pydantic Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )
    
    # Database (use postgresql://... in production)
    database_url: str = "sqlite:///./campusnest.db"
    
    # Chat feed
    # Expiry stops waiting but cannot cancel a SQL call already running in a
    # worker thread: a timed-out send may still be stored and published.
    store_timeout_seconds: float = 10.0
    unknown_sender_label: str = "Unknown User"
    own_sender_label: str = "You"
    max_message_length: int = 4000
    
    # Application
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
