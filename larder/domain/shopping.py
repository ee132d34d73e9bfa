"""Shopping list domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ShoppingReason(StrEnum):
    """Why an item is on a shopping list."""

    RECIPE = "RECIPE"
    LOW_STOCK = "LOW_STOCK"
    FORECAST = "FORECAST"
    MANUAL = "MANUAL"


class ShoppingListItem(BaseModel):
    """Shopping list item data transfer object."""

    id: str = Field(..., description="Unique item ID from database")
    list_id: str
    article_id: str | None = Field(default=None, description="Article to buy, if known")
    custom_name: str | None = Field(default=None, description="Display name for category or free-text items")
    needed_quantity: float = Field(..., ge=0, description="Quantity needed, rounded to 2 decimals")
    unit: str = Field(default="pcs", description="Unit of needed_quantity")
    recommended_packs: int = Field(default=1, ge=1, description="Whole packages to buy")
    estimated_price: float | None = Field(default=None, description="Estimated price, None without price history")
    is_purchased: bool = False
    purchased_quantity: float | None = None
    actual_price: float | None = None
    purchase_date: datetime | None = None
    expiry_date: datetime | None = None
    reason: ShoppingReason = ShoppingReason.MANUAL
    article_name: str | None = Field(default=None, description="Resolved article name for display")


class ShoppingList(BaseModel):
    """Shopping list with its items and summary figures."""

    id: str = Field(..., description="Unique list ID from database")
    name: str
    shop_date: datetime
    plan_until_date: datetime
    created: datetime | None = None
    completed_at: datetime | None = None
    items: list[ShoppingListItem] = Field(default_factory=list)
    total_items: int = 0
    purchased_items: int = 0
    estimated_total: float = 0
