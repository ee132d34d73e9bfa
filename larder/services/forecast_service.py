"""Forecast service: rolling-average consumption forecasts.

The average is taken over CONSUMPTION-direction logs of the last
``lookback_days`` days, for consumable articles only. Stock additions made by
corrections never count as consumption.
"""

import logging
import math
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel

from larder.core import db_client
from larder.core.config import settings
from larder.core.db_client import sanitize_param
from larder.core.errors import NotFoundError
from larder.core.logging import span
from larder.core.rounding import round_quantity
from larder.domain.article import Article
from larder.domain.consumption import ConsumptionDirection
from larder.models.service_models import ConsumptionForecast
from larder.services import inventory_service


logger = logging.getLogger(__name__)


class ForecastedItem(BaseModel):
    """Per-article purchase recommendation for a planning window."""

    article_id: str
    quantity: float
    unit: str


async def _consumed_since(article_id: str, since: datetime) -> float:
    return await db_client.sum_field(
        collection="consumption_logs",
        field="quantity",
        filter_query=(
            f'article_id = "{sanitize_param(article_id)}" '
            f'&& direction = "{ConsumptionDirection.CONSUMPTION}" '
            f'&& consumed_at >= "{db_client.format_timestamp(since)}"'
        ),
    )


async def _build_forecast(
    article: Article,
    *,
    lookback_days: int,
    forecast_days: int,
    now: datetime,
) -> ConsumptionForecast:
    total_consumed = round_quantity(await _consumed_since(article.id, now - timedelta(days=lookback_days)))
    current_stock = await inventory_service.get_current_stock(article_id=article.id)

    average_per_day = total_consumed / lookback_days
    average_per_week = average_per_day * 7

    days_until_empty: int | None = None
    predicted_empty_date: datetime | None = None
    if average_per_day > 0 and current_stock > 0:
        days_until_empty = math.floor(current_stock / average_per_day)
        predicted_empty_date = now + timedelta(days=days_until_empty)
    elif current_stock <= 0:
        days_until_empty = 0
        predicted_empty_date = now

    predicted_need = round_quantity(average_per_day * forecast_days)
    recommended_purchase = math.ceil(round_quantity(max(0.0, predicted_need - current_stock)))

    return ConsumptionForecast(
        article_id=article.id,
        article_name=article.name,
        unit=article.default_unit,
        current_stock=current_stock,
        total_consumed=total_consumed,
        average_per_day=round_quantity(average_per_day),
        average_per_week=round_quantity(average_per_week),
        days_until_empty=days_until_empty,
        predicted_empty_date=predicted_empty_date,
        predicted_need=predicted_need,
        recommended_purchase=recommended_purchase,
        min_stock=article.min_stock,
    )


def _urgency(forecast: ConsumptionForecast) -> tuple[bool, int]:
    # Articles that never run out sort last
    return (forecast.days_until_empty is None, forecast.days_until_empty or 0)


async def get_consumption_forecasts(
    *,
    lookback_days: int | None = None,
    forecast_days: int | None = None,
) -> list[ConsumptionForecast]:
    """Forecast every consumable article, most urgent first.

    Args:
        lookback_days: Days of history to average (defaults to settings.forecast_lookback_days)
        forecast_days: Horizon for the recommended purchase (defaults to settings.forecast_days)

    Returns:
        Forecasts sorted by days until empty, articles that never run out last
    """
    with span("forecast_service.get_consumption_forecasts"):
        lookback = lookback_days or settings.forecast_lookback_days
        horizon = settings.forecast_days if forecast_days is None else forecast_days
        now = datetime.now(UTC)

        records = await db_client.list_all_records(
            collection="articles",
            filter_query='is_consumable = "true"',
            sort="id ASC",
        )

        forecasts = [
            await _build_forecast(Article(**record), lookback_days=lookback, forecast_days=horizon, now=now)
            for record in records
        ]
        forecasts.sort(key=_urgency)

        logger.debug("Built consumption forecasts", extra={"count": len(forecasts), "forecast_days": horizon})
        return forecasts


async def get_article_forecast(
    *,
    article_id: str,
    lookback_days: int | None = None,
    forecast_days: int | None = None,
) -> ConsumptionForecast:
    """Forecast a single article.

    Raises:
        NotFoundError: If the article does not exist
    """
    with span("forecast_service.get_article_forecast"):
        article = await inventory_service.get_article(article_id=article_id)
        if not article.is_consumable:
            raise NotFoundError("Consumable article", article_id)

        return await _build_forecast(
            article,
            lookback_days=lookback_days or settings.forecast_lookback_days,
            forecast_days=settings.forecast_days if forecast_days is None else forecast_days,
            now=datetime.now(UTC),
        )


async def get_articles_running_low(*, days: int | None = None) -> list[ConsumptionForecast]:
    """Articles expected to run out within ``days`` days (empty ones included)."""
    with span("forecast_service.get_articles_running_low"):
        horizon = settings.forecast_days if days is None else days
        forecasts = await get_consumption_forecasts(forecast_days=horizon)
        return [f for f in forecasts if f.days_until_empty is not None and f.days_until_empty <= horizon]


async def get_forecasted_shopping_items(*, shop_date: datetime, plan_until: datetime) -> list[ForecastedItem]:
    """Recommended purchases for the whole days between ``shop_date`` and ``plan_until``."""
    with span("forecast_service.get_forecasted_shopping_items"):
        forecast_days = max(0, (plan_until - shop_date).days)
        forecasts = await get_consumption_forecasts(forecast_days=forecast_days)

        return [
            ForecastedItem(article_id=f.article_id, quantity=f.recommended_purchase, unit=f.unit)
            for f in forecasts
            if f.recommended_purchase > 0
        ]
