import os
from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings using Pydantic BaseSettings"""

    # Database
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    AUTO_CREATE_TABLES: bool = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    # Cache
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
    CACHE_NAMESPACE: str = os.getenv("CACHE_NAMESPACE", "db")

    # Providers
    TMDB_API_KEY: Optional[str] = os.getenv("TMDB_API_KEY")
    OMDB_API_KEY: Optional[str] = os.getenv("OMDB_API_KEY")
    TMDB_LANGUAGE: str = os.getenv("TMDB_LANGUAGE", "cs-CZ")
    WATCH_REGION: str = os.getenv("WATCH_REGION", "CZ")
    NETFLIX_PROVIDER_ID: int = int(os.getenv("NETFLIX_PROVIDER_ID", "8"))
    PROVIDER_TIMEOUT: int = int(os.getenv("PROVIDER_TIMEOUT", "30"))
    ENRICH_BATCH_SIZE: int = int(os.getenv("ENRICH_BATCH_SIZE", "5"))

    # Netflix Top 10
    NETFLIX_TOP10_URL: str = os.getenv(
        "NETFLIX_TOP10_URL", "https://top10.netflix.com/data/all-weeks-countries.tsv"
    )
    TOP10_COUNTRIES: str = os.getenv("TOP10_COUNTRIES", "Czech Republic,Czechia")

    # CORS
    CORS_ALLOW_ORIGINS: Optional[str] = os.getenv("CORS_ALLOW_ORIGINS")

    # Scheduler
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "false").lower() == "true"
    SCHEDULE_HOUR: int = int(os.getenv("SCHEDULE_HOUR", "6"))
    SCHEDULE_MINUTE: int = int(os.getenv("SCHEDULE_MINUTE", "0"))

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

# Singleton instance
_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """Get settings singleton instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
