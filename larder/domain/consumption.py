"""Consumption log domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ConsumptionSource(StrEnum):
    """Why stock left (or entered) the larder."""

    MANUAL = "MANUAL"
    RECIPE = "RECIPE"
    EXPIRED = "EXPIRED"
    WASTE = "WASTE"
    CORRECTION = "CORRECTION"


class ConsumptionDirection(StrEnum):
    """Direction of a stock movement; only corrections may add stock."""

    CONSUMPTION = "CONSUMPTION"
    ADDITION = "ADDITION"


class ConsumptionLog(BaseModel):
    """Append-only record of a stock movement."""

    id: str = Field(..., description="Unique log ID from database")
    article_id: str = Field(..., description="Article whose stock moved")
    batch_id: str | None = Field(default=None, description="Batch the quantity was taken from or added to")
    recipe_id: str | None = Field(default=None, description="Recipe cooked, for RECIPE logs")
    quantity: float = Field(..., ge=0, description="Magnitude of the movement in the canonical unit")
    direction: ConsumptionDirection = Field(default=ConsumptionDirection.CONSUMPTION)
    consumed_at: datetime = Field(..., description="When the movement happened")
    source: ConsumptionSource = Field(default=ConsumptionSource.MANUAL)
    notes: str | None = None
