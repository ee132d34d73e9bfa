"""Tests for rolling-average consumption forecasts."""

from datetime import UTC, datetime, timedelta

import pytest

from larder.core.errors import NotFoundError
from larder.services import forecast_service


def days_ago(days: float) -> datetime:
    return datetime.now(UTC) - timedelta(days=days)


@pytest.fixture
async def coffee(seed) -> dict:
    """Coffee consumed at 30 g over the last 30 days, 10 g in stock."""
    article = await seed.article("Coffee", default_unit="g")
    await seed.batch(article["id"], 10)
    await seed.log(article["id"], 20, consumed_at=days_ago(10))
    await seed.log(article["id"], 10, consumed_at=days_ago(1))
    return article


@pytest.mark.unit
class TestArticleForecast:
    async def test_rolling_average(self, coffee) -> None:
        """Test daily and weekly averages over the lookback window."""
        forecast = await forecast_service.get_article_forecast(article_id=coffee["id"], lookback_days=30)

        assert forecast.total_consumed == 30
        assert forecast.average_per_day == 1
        assert forecast.average_per_week == 7
        assert forecast.days_until_empty == 10
        assert forecast.predicted_empty_date is not None

    async def test_recommended_purchase(self, coffee) -> None:
        """Test the recommendation covers the horizon minus stock, rounded up."""
        covered = await forecast_service.get_article_forecast(article_id=coffee["id"], forecast_days=7)
        short = await forecast_service.get_article_forecast(article_id=coffee["id"], forecast_days=14)

        assert covered.predicted_need == 7
        assert covered.recommended_purchase == 0
        assert short.recommended_purchase == 4

    async def test_old_logs_ignored(self, seed, coffee) -> None:
        """Test logs before the lookback window do not count."""
        await seed.log(coffee["id"], 500, consumed_at=days_ago(45))

        forecast = await forecast_service.get_article_forecast(article_id=coffee["id"], lookback_days=30)

        assert forecast.total_consumed == 30

    async def test_additions_ignored(self, seed, coffee) -> None:
        """Test correction additions never count as consumption."""
        await seed.log(coffee["id"], 50, consumed_at=days_ago(2), direction="ADDITION", source="CORRECTION")

        forecast = await forecast_service.get_article_forecast(article_id=coffee["id"], lookback_days=30)

        assert forecast.total_consumed == 30

    async def test_no_history(self, seed) -> None:
        """Test articles without consumption never run out."""
        salt = await seed.article("Salt")
        await seed.batch(salt["id"], 1)

        forecast = await forecast_service.get_article_forecast(article_id=salt["id"])

        assert forecast.average_per_day == 0
        assert forecast.days_until_empty is None
        assert forecast.recommended_purchase == 0

    async def test_empty_article(self, seed) -> None:
        """Test an article without stock is already empty."""
        salt = await seed.article("Salt")

        forecast = await forecast_service.get_article_forecast(article_id=salt["id"])

        assert forecast.days_until_empty == 0

    async def test_non_consumable_rejected(self, seed) -> None:
        """Test forecasts are only offered for consumable articles."""
        pan = await seed.article("Pan", is_consumable=False)

        with pytest.raises(NotFoundError):
            await forecast_service.get_article_forecast(article_id=pan["id"])


@pytest.mark.unit
class TestForecastLists:
    async def test_sorted_by_urgency(self, seed, coffee) -> None:
        """Test soonest-empty first and never-empty last."""
        salt = await seed.article("Salt")
        await seed.batch(salt["id"], 1)
        empty = await seed.article("Sugar")
        await seed.article("Pan", is_consumable=False)

        forecasts = await forecast_service.get_consumption_forecasts()

        assert [f.article_id for f in forecasts] == [empty["id"], coffee["id"], salt["id"]]

    async def test_running_low(self, seed, coffee) -> None:
        """Test only articles running out within the horizon are listed."""
        salt = await seed.article("Salt")
        await seed.batch(salt["id"], 1)

        soon = await forecast_service.get_articles_running_low(days=7)
        later = await forecast_service.get_articles_running_low(days=10)

        assert [f.article_id for f in soon] == []
        assert [f.article_id for f in later] == [coffee["id"]]

    async def test_shopping_items_for_window(self, coffee) -> None:
        """Test the window length drives the recommended quantities."""
        shop_date = datetime(2026, 11, 2, tzinfo=UTC)

        items = await forecast_service.get_forecasted_shopping_items(
            shop_date=shop_date, plan_until=shop_date + timedelta(days=13)
        )

        assert len(items) == 1
        assert items[0].article_id == coffee["id"]
        assert items[0].quantity == 3
        assert items[0].unit == "g"
