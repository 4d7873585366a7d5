"""
Configuration Management
Loads environment variables and app settings
"""

import os
from typing import List
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings"""

    # API Configuration
    app_name: str = "HaemoFlow API"
    app_version: str = "1.0.0"
    environment: str = os.getenv("ENVIRONMENT", "development")

    # API Security
    api_keys: List[str] = os.getenv("API_KEYS", "dev-key-123").split(",")

    # Storage: "memory" for local runs and tests, "supabase" in production
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")

    # Groq Configuration (agent reasoning)
    groq_api_key: str = os.getenv("GROQ_API_KEY", "")

    # Public base URL for donor response links
    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:8000")

    # Outbound notifications (empty = log only)
    notify_webhook_url: str = os.getenv("NOTIFY_WEBHOOK_URL", "")

    # Agent task queue
    agent_workers: int = int(os.getenv("AGENT_WORKERS", "4"))
    task_max_attempts: int = int(os.getenv("TASK_MAX_ATTEMPTS", "3"))
    response_window_minutes: int = int(os.getenv("RESPONSE_WINDOW_MINUTES", "60"))
    local_timezone: str = os.getenv("LOCAL_TIMEZONE", "UTC")

    # CORS Configuration
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:8000",
    ]

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Singleton settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings"""
    return settings
