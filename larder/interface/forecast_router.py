"""Consumption forecast endpoints."""

from fastapi import APIRouter, Query

from larder.models.service_models import ConsumptionForecast
from larder.services import forecast_service


router = APIRouter(prefix="/forecast", tags=["forecast"])


@router.get("", response_model=list[ConsumptionForecast])
async def get_forecasts(
    lookback_days: int | None = Query(default=None, gt=0),
    forecast_days: int | None = Query(default=None, ge=0),
) -> list[ConsumptionForecast]:
    return await forecast_service.get_consumption_forecasts(lookback_days=lookback_days, forecast_days=forecast_days)


@router.get("/running-low", response_model=list[ConsumptionForecast])
async def get_running_low(days: int | None = Query(default=None, ge=0)) -> list[ConsumptionForecast]:
    return await forecast_service.get_articles_running_low(days=days)


@router.get("/article/{article_id}", response_model=ConsumptionForecast)
async def get_article_forecast(
    article_id: str,
    lookback_days: int | None = Query(default=None, gt=0),
    forecast_days: int | None = Query(default=None, ge=0),
) -> ConsumptionForecast:
    return await forecast_service.get_article_forecast(
        article_id=article_id,
        lookback_days=lookback_days,
        forecast_days=forecast_days,
    )
