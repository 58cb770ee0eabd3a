"""
SOSNet - Configuration Module
Centralized environment configuration
"""
import logging
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "SOSNet"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./sosnet.db"
    DROP_TABLES_ON_START: bool = False

    # JWT
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    CITIZEN_TOKEN_EXPIRE_DAYS: int = 30  # shadow accounts get long-lived tokens

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Escalation sweep
    ESCALATION_ENABLED: bool = True
    ESCALATION_INTERVAL_MINUTES: float = 5
    ESCALATION_THRESHOLD_MINUTES: float = 15

    # Geocoding
    GEOCODE_ON_SUBMIT: bool = False
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/reverse"
    NOMINATIM_USER_AGENT: str = "sosnet-disaster-response"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()


def configure_logging(level: str = None):
    """Configure root logging once for the process"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
