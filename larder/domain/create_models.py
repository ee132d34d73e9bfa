"""Pydantic models for creating records and request payloads."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from larder.domain.consumption import ConsumptionSource
from larder.domain.shopping import ShoppingReason


class UnitCreate(BaseModel):
    """Pydantic model for creating a unit record."""

    symbol: str = Field(..., min_length=1, max_length=20, description="Unit symbol, unique")
    name: str = Field(..., min_length=1, description="Human readable name")
    conversion_group: str | None = Field(default=None, description="Linear conversion group")
    conversion_factor: float = Field(default=1, gt=0, description="Factor relative to the group's base unit")
    converts_to_unit_id: str | None = Field(default=None, description="Target unit of the custom edge")
    converts_to_amount: float | None = Field(default=None, gt=0, description="Target amount per one of this unit")
    sort_order: int = 0

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, v: str) -> str:
        """Strip whitespace around the symbol."""
        v = v.strip()
        if not v:
            msg = "Symbol must not be blank"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def require_amount_with_target(self) -> "UnitCreate":
        """A custom conversion edge needs both a target and an amount."""
        if (self.converts_to_unit_id is None) != (self.converts_to_amount is None):
            msg = "converts_to_unit_id and converts_to_amount must be given together"
            raise ValueError(msg)
        return self


class BatchCreate(BaseModel):
    """Pydantic model for recording a purchase as a new batch."""

    article_id: str
    quantity: float = Field(..., gt=0, description="Purchased quantity in the article's canonical unit")
    purchase_date: datetime | None = Field(default=None, description="Defaults to now")
    expiry_date: datetime | None = Field(default=None, description="Defaults to purchase_date + default_expiry_days")
    purchase_price: float | None = Field(default=None, ge=0)
    notes: str | None = None


class ShoppingListGenerate(BaseModel):
    """Request payload for generating a shopping list."""

    name: str | None = Field(default=None, description="Defaults to 'Shopping <shop date>'")
    shop_date: datetime
    plan_until: datetime

    @model_validator(mode="after")
    def check_window(self) -> "ShoppingListGenerate":
        """The planning window must not end before the shop date."""
        if self.plan_until < self.shop_date:
            msg = "plan_until must not be before shop_date"
            raise ValueError(msg)
        return self


class ShoppingItemCreate(BaseModel):
    """Request payload for manually adding an item to a shopping list."""

    article_id: str | None = None
    custom_name: str | None = None
    needed_quantity: float = Field(..., gt=0)
    unit: str = "pcs"
    recommended_packs: int = Field(default=1, ge=1)
    estimated_price: float | None = Field(default=None, ge=0)
    reason: ShoppingReason = ShoppingReason.MANUAL

    @model_validator(mode="after")
    def require_target(self) -> "ShoppingItemCreate":
        """An item names an article or carries a free-text name."""
        if not self.article_id and not self.custom_name:
            msg = "Either article_id or custom_name is required"
            raise ValueError(msg)
        return self


class ConsumeRequest(BaseModel):
    """Request payload for FIFO consumption from an article."""

    quantity: float = Field(..., gt=0)
    unit: str | None = Field(default=None, description="Unit of quantity; defaults to the article's canonical unit")
    source: ConsumptionSource = ConsumptionSource.MANUAL
    notes: str | None = None


class BatchConsumeRequest(BaseModel):
    """Request payload for consuming from one specific batch."""

    quantity: float = Field(..., gt=0)
    unit: str | None = None
    source: ConsumptionSource = ConsumptionSource.MANUAL
    notes: str | None = None


class StockCorrectionRequest(BaseModel):
    """Request payload for declaring the actual stock of an article."""

    actual_stock: float = Field(..., ge=0)
    notes: str | None = None


class CookRequest(BaseModel):
    """Request payload for cooking a recipe."""

    servings: int | None = Field(default=None, gt=0, description="Defaults to the recipe's servings")
