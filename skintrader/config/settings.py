"""
Application configuration using Pydantic BaseSettings.

A single ``Settings`` instance is built at startup and handed to every
component constructor.
"""

from typing import Optional, Dict
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from skintrader.integrations.errors import ConfigurationError


SUPPORTED_MARKETPLACES = ("bitskins", "dmarket")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: str = "development"

    @property
    def environment(self) -> str:
        """Lowercase environment for compatibility."""
        return self.ENVIRONMENT.lower()

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./skintrader.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Marketplace credentials
    MARKETPLACE: str = "bitskins"
    BITSKINS_API_KEY: Optional[str] = None
    DMARKET_API_KEY: Optional[str] = None
    DMARKET_SECRET_KEY: Optional[str] = None

    # Request handling
    REQUEST_TIMEOUT: int = 30
    REQUEST_RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0

    # Synchronization
    SYNC_CONCURRENCY: int = 10
    LISTING_MAX_OFFSET: int = 5000

    # Trading thresholds
    MIN_SALE_COUNT: int = 500
    MIN_MONTHLY_SALES: int = 0
    MIN_PRICE_SLOPE: float = 0.0
    AFFORDABILITY_FRACTION: float = 0.5
    RELIST_DISCOUNT: float = 0.0
    FEE_RATE: float = 0.1
    FEE_FLOOR: float = 10.0
    MIN_PROFIT_MARGIN: float = 0.2
    MIN_LIST_PRICE: float = 1.0
    UNDERCUT_STEP: float = 1.0

    # Push feed
    FEED_RECONNECT_DELAY: float = 1.0
    FEED_MAX_RECONNECT_DELAY: float = 60.0

    # Schedules (five-field cron, UTC)
    RELIST_SCHEDULE: str = "0 * * * *"
    PURCHASE_SCHEDULE: str = "0 0 * * *"
    RESYNC_SCHEDULE: str = "0 0 */10 * *"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    LOG_FILE_PATH: Optional[str] = None

    @field_validator("MARKETPLACE", mode="before")
    @classmethod
    def validate_marketplace(cls, v):
        """Normalize and check the configured marketplace name."""
        v = str(v).strip().lower()
        if v not in SUPPORTED_MARKETPLACES:
            raise ValueError(f"Unsupported marketplace: {v}")
        return v

    @field_validator(
        "REQUEST_RETRY_ATTEMPTS", "SYNC_CONCURRENCY", "LISTING_MAX_OFFSET",
        "REQUEST_TIMEOUT",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("MIN_SALE_COUNT", "MIN_MONTHLY_SALES", "UNDERCUT_STEP")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("AFFORDABILITY_FRACTION", "RELIST_DISCOUNT", "FEE_RATE")
    @classmethod
    def validate_fraction(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("must be within [0, 1]")
        return v

    @field_validator("BITSKINS_API_KEY", "DMARKET_API_KEY", "DMARKET_SECRET_KEY", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        """Convert empty strings to None for optional credentials."""
        if v == "" or v is None:
            return None
        return v

    def require_credentials(self) -> None:
        """
        Ensure credentials for the configured marketplace are present.

        Raises:
            ConfigurationError: If a required key is missing
        """
        if self.MARKETPLACE == "bitskins":
            missing = [] if self.BITSKINS_API_KEY else ["BITSKINS_API_KEY"]
        else:
            missing = [
                name for name in ("DMARKET_API_KEY", "DMARKET_SECRET_KEY")
                if not getattr(self, name)
            ]
        if missing:
            raise ConfigurationError(f"Missing credentials: {', '.join(missing)}")

    def rate_capacities(self) -> Dict[str, int]:
        """Per-category request budgets (requests per second) for the marketplace."""
        if self.MARKETPLACE == "bitskins":
            return {"global": 5, "market": 1}
        return {"fee": 110, "last-sales": 6, "market-items": 10, "other": 20}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
