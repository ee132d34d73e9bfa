"""Update models for database operations."""

from datetime import datetime

from pydantic import BaseModel, Field


class UnitUpdate(BaseModel):
    """Update payload for a unit; omitted fields stay unchanged."""

    symbol: str | None = Field(default=None, min_length=1, max_length=20)
    name: str | None = None
    conversion_group: str | None = None
    conversion_factor: float | None = Field(default=None, gt=0)
    converts_to_unit_id: str | None = None
    converts_to_amount: float | None = Field(default=None, gt=0)
    sort_order: int | None = None


class PurchaseUpdate(BaseModel):
    """Update payload correcting a recorded purchase."""

    initial_quantity: float | None = Field(default=None, gt=0)
    purchase_date: datetime | None = None
    expiry_date: datetime | None = None
    purchase_price: float | None = Field(default=None, ge=0)
    notes: str | None = None


class ShoppingItemUpdate(BaseModel):
    """Update payload for a shopping list item."""

    is_purchased: bool | None = None
    needed_quantity: float | None = Field(default=None, gt=0)
    purchased_quantity: float | None = Field(default=None, ge=0)
    actual_price: float | None = Field(default=None, ge=0)
    purchase_date: datetime | None = None
    expiry_date: datetime | None = None
    recommended_packs: int | None = Field(default=None, ge=1)


class ConsumptionLogUpdate(BaseModel):
    """Update payload for a consumption log entry."""

    quantity: float | None = Field(default=None, ge=0)
    consumed_at: datetime | None = None
    notes: str | None = None
