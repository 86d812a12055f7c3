from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    AUTO_CREATE_TABLES: bool = False  # create_all on startup instead of Alembic (dev/SQLite)

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # App Settings
    APP_NAME: str = "Padmaaja Rasooi API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Redis Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    SETTINGS_CACHE_TTL: int = 300  # 5 minutes for system settings and rate table

    # Commission plan
    MAX_COMMISSION_LEVELS: int = 5
    DEFAULT_COMMISSION_RATES: list[float] = [8, 4, 2, 1, 0.5]
    COMMISSION_SKIP_INACTIVE_REFERRERS: bool = False  # Default: inactive referrers still earn

    # Genealogy
    GENEALOGY_MAX_DEPTH: int = 5
    GENEALOGY_DEPTH_LIMIT: int = 10  # Hard cap regardless of requested depth

    # Partnership tiers seeded when none exist: name -> capacity
    DEFAULT_PARTNERSHIP_TIERS: dict[str, int] = {
        "Diamond": 500,
        "Gold": 1500,
        "Silver": 3000,
    }

    # CSV import/export
    CSV_IMPORT_BATCH_SIZE: int = 50
    CSV_IMPORT_MAX_ERRORS: int = 50
    CSV_EXPORT_LIMIT: int = 10000

    # Admin account created on first start when the users table is empty
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('DEFAULT_COMMISSION_RATES', mode='before')
    @classmethod
    def parse_commission_rates(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [float(rate.strip()) for rate in v.split(',') if rate.strip()]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin for origin in self.CORS_ORIGINS if origin]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
