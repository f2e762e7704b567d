"""
Configuration settings for the application
"""

import os
from typing import Dict, List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tripsync.db")
    DB_ECHO: bool = False
    LOCK_WAIT_TIMEOUT_SECONDS: float = 5.0

    # Deadlock / lock-wait retry
    RETRY_MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_MS: int = 50
    RETRY_MAX_DELAY_MS: int = 500

    # Security
    # token -> user id, resolved by the development identity resolver
    AUTH_TOKENS: Dict[str, int] = {}

    # Application
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]

settings = Settings()
