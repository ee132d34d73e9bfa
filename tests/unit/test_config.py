"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from larder.core.config import Settings, constants


def test_defaults() -> None:
    """Test settings defaults used by list generation and forecasting."""
    settings = Settings()

    assert settings.price_history_limit == 10
    assert settings.forecast_lookback_days == 30
    assert settings.forecast_days == 7
    assert settings.expiring_days == 7
    assert settings.seed_default_units is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test values are read from environment variables case-insensitively."""
    monkeypatch.setenv("PRICE_HISTORY_LIMIT", "3")
    monkeypatch.setenv("sqlite_db_path", "/tmp/other.db")

    settings = Settings()

    assert settings.price_history_limit == 3
    assert settings.sqlite_db_path == "/tmp/other.db"


def test_price_history_limit_must_be_positive() -> None:
    """Test a zero price history window is rejected."""
    with pytest.raises(ValidationError, match="price_history_limit"):
        Settings(price_history_limit=0)


def test_is_production() -> None:
    """Test the production flag follows the environment name."""
    assert Settings(environment="Production").is_production is True
    assert Settings(environment="development").is_production is False


def test_rounding_constants() -> None:
    """Test the precision constants stay at 4 internal and 2 display decimals."""
    assert constants.QUANTITY_PRECISION == 4
    assert constants.DISPLAY_PRECISION == 2
    assert constants.DEFAULT_UNIT == "pcs"
