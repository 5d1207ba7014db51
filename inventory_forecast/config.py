from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, Union
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

    # App Settings
    APP_NAME: str = "Reseller Inventory Forecast"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: Union[list[str], str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Tenant whose catalog this process forecasts (used for cache namespacing)
    TENANT_ID: str = "default"

    # Forecast windows and thresholds
    FORECAST_DEMAND_WINDOW_DAYS: int = 30  # Trailing window of paid sales
    FORECAST_TREND_WINDOW_DAYS: int = 7  # Recent vs. previous window length
    FORECAST_TREND_MIN_DAYS_WITH_DATA: int = 7  # Below this the trend is insufficient_data
    FORECAST_TREND_INCREASE_FACTOR: float = 1.1
    FORECAST_TREND_DECREASE_FACTOR: float = 0.9
    FORECAST_LOW_STOCK_BUFFER_DAYS: int = 7  # Added to lead time for the low_stock band
    FORECAST_NO_DEPLETION_SENTINEL: int = 999  # days_until_stockout when nothing sells

    # Reorder defaults applied when a product leaves a parameter empty
    DEFAULT_LEAD_TIME_DAYS: int = 7
    DEFAULT_SAFETY_STOCK_DAYS: int = 7
    DEFAULT_REVIEW_PERIOD_DAYS: int = 7
    DEFAULT_FREIGHT_COST_PER_UNIT: float = 0
    DEFAULT_MIN_ORDER_QUANTITY: int = 1

    # Change feed (Postgres LISTEN/NOTIFY)
    CHANGE_FEED_ENABLED: bool = True
    SALES_CHANGE_CHANNEL: str = "sales_changed"
    PRODUCTS_CHANGE_CHANNEL: str = "products_changed"
    CHANGE_FEED_RECONNECT_SECONDS: float = 5.0

    # Redis Cache Settings
    REDIS_URL: Optional[str] = None  # e.g., "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    FORECAST_CACHE_TTL: int = 300  # 5 minutes for computed forecasts

    # Periodic refresh job (0 disables it)
    FORECAST_REFRESH_INTERVAL_MINUTES: int = 0
    SCHEDULER_TIMEZONE: str = "UTC"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        if isinstance(self.CORS_ORIGINS, str):
            return [self.CORS_ORIGINS]
        return list(self.CORS_ORIGINS)

    @property
    def is_postgres(self) -> bool:
        return self.DATABASE_URL.startswith("postgresql")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
