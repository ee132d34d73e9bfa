"""Configuration management for larder."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage Configuration
    sqlite_db_path: str = Field(default="data/larder.db", description="Path to the SQLite database file")
    seed_default_units: bool = Field(
        default=True, description="Seed pcs/g/kg/ml/l when the units table is empty"
    )

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Shopping List Generation
    price_history_limit: int = Field(
        default=10, gt=0, description="Number of most recent priced batches averaged for price estimates"
    )

    # Consumption Forecast
    forecast_lookback_days: int = Field(
        default=30, gt=0, description="Days of consumption history used for the rolling average"
    )
    forecast_days: int = Field(default=7, ge=0, description="Default forecast horizon in days")

    # Expiry Warnings
    expiring_days: int = Field(default=7, ge=0, description="Days ahead a batch counts as expiring soon")

    @property
    def is_production(self) -> bool:
        """Return True when running in production."""
        return self.environment.lower() == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    # Rounding
    QUANTITY_PRECISION: int = 4  # Internal arithmetic
    DISPLAY_PRECISION: int = 2  # Stored and displayed quantities and prices
    PACK_TOLERANCE: float = 1e-9  # Float drift ignored when rounding pack counts up

    # Units
    DEFAULT_UNIT: str = "pcs"

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100  # Page size used when walking a whole collection

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
