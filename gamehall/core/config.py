"""
Terminal configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


# Defaults applied to every table when the pool is (re)generated
TABLE_TYPE_DEFAULTS = {
    "standard": {"capacity": 4, "features": ["Standard Service"]},
    "premium": {"capacity": 6, "features": ["Premium Service", "Reserved Shelf"]},
    "vip": {"capacity": 8, "features": ["VIP Service", "Private Area"]},
}


class Settings(BaseSettings):
    """Terminal settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Gamehall Terminal"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    TERMINAL_ID: str = "terminal-1"

    # API
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    # Table pool
    TABLE_POOL_SIZE: int = 15
    DEFAULT_TABLE_TYPE: str = "standard"
    DEFAULT_TABLE_CAPACITY: int = 4
    DEFAULT_TABLE_LOCATION: str = "Main Hall"

    # Pricing (per person)
    DEFAULT_FIRST_HOUR_PRICE: float = 30
    DEFAULT_EXTRA_HOUR_PRICE: float = 30
    FREE_MINUTES: int = 30
    FIRST_TIER_MINUTES: int = 90
    CURRENCY: str = "SAR"

    # Replication
    REPLICATION_BACKEND: str = "memory"  # memory | redis
    REPLICATION_CHANNEL: str = "shop-realtime"
    REDIS_URL: str = "redis://localhost:6379"

    # Durable snapshot
    SNAPSHOT_BACKEND: str = "sql"  # memory | sql
    SNAPSHOT_DATABASE_URL: str = "sqlite:///./gamehall_snapshot.db"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
